"""CMS Tools - metadata-driven CRUD administration over arbitrary tables."""

__version__ = "0.1.0"
