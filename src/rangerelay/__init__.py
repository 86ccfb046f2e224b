"""Remote range replacement for live editable surfaces."""

__version__ = "0.1.0"

__all__ = ["__version__"]
