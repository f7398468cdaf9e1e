"""Remote document-AI backends: clients, schema transformers and the client registry."""

from .azure import AzureClient, AzureSchemaTransformer
from .base import BackendClient, SchemaTransformer
from .docling import DoclingClient, DoclingSchemaTransformer
from .geometry import TransformCursor, sort_by_reading_order
from .polling import Poller, PollResult, PollStatus
from .registry import (
    STRATEGIES,
    BackendStrategy,
    ClientRegistry,
    default_registry,
    resolve_strategy,
)

__all__ = [
    "AzureClient",
    "AzureSchemaTransformer",
    "BackendClient",
    "BackendStrategy",
    "ClientRegistry",
    "DoclingClient",
    "DoclingSchemaTransformer",
    "PollResult",
    "PollStatus",
    "Poller",
    "SchemaTransformer",
    "STRATEGIES",
    "TransformCursor",
    "default_registry",
    "resolve_strategy",
]
