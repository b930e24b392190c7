"""Artists API backend: regional mirror synchronization."""

__version__ = "1.0.0"
