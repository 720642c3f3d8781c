"""StateSet: tenant-scoped dataset lifecycle engine."""

__version__ = "0.1.0"
