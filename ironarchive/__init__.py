"""IronArchive: service lifecycle for the archive backend."""

__version__ = "1.0.0"
