"""Terminal chat client that takes turns between a person and a completion model."""

__version__ = "0.1.0"

__all__ = ["__version__"]
