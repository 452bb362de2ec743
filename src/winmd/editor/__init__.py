"""Editor package containing the document tree and workspace state."""

from . import document_model, document_store, workspace

__all__ = ["document_model", "document_store", "workspace"]
