"""Editor package containing the host surface model and the replace engine."""

from . import document_model, replace_engine, segments, surfaces

__all__ = ["document_model", "replace_engine", "segments", "surfaces"]
