"""share-guard: per-identity connection-sharing policy enforcement."""

__version__ = "1.0.0"
