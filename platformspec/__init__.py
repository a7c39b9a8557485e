"""platformspec: specification validator and artifact verification engine.

Loads plugin, task, query, and control specification documents, validates
their structure and metadata, and verifies that the container images and
downloadable archives they reference actually exist and match their
declared checksums.
"""

__version__ = "0.1.0"
