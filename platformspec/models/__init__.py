"""In-memory data model for validated specifications."""
