"""Parse exported HTML documents into ordered, styled blocks."""

from .core import (
    BlockKind,
    BuildConfig,
    DocumentError,
    DocumentModel,
    EmptyDocumentError,
    EmptyDocumentIdError,
    FetchError,
    RenderableBlock,
    StructureError,
    build_document_model,
)
from .version import __version__

__all__ = [
    "BlockKind",
    "BuildConfig",
    "DocumentError",
    "DocumentModel",
    "EmptyDocumentError",
    "EmptyDocumentIdError",
    "FetchError",
    "RenderableBlock",
    "StructureError",
    "__version__",
    "build_document_model",
]
