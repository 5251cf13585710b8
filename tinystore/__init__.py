"""A small embedded key-value store backed by a paged B+tree file."""

__version__ = "0.1.0"

__all__ = ["__version__"]