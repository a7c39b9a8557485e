"""Specification validation.

This package provides the layers a specification document passes through:
1. Envelope: read just enough to know the type and API version
2. Structure: type-specific field and cross-field rules, with defaulting
3. Semantics: versions, constraints, dates, and SPDX licenses
"""

# Standard specification types
SPEC_TYPE_PLUGIN = "plugin"
SPEC_TYPE_TASK = "task"
SPEC_TYPE_QUERY = "query"
SPEC_TYPE_CONTROL = "control"

API_VERSION_V1 = "v1"

# Layout of metadata.published-date
PUBLISHED_DATE_FORMAT = "%Y-%m-%d"

# Schedule ids that must cover every declared task parameter
DEFAULT_SCHEDULE_IDS = ("default", "describe-all")

# Output formats for embedded task projection
FORMAT_YAML = "yaml"
FORMAT_JSON = "json"
