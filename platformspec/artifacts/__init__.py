"""Artifact verification: checksums, archive contents, downloads and registry lookups.

Everything in this package runs only against specifications that already
passed structural validation.
"""
