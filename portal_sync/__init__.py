"""Message portal synchronisation: listing, download, extraction and status polling."""

__version__ = "0.1.0"
