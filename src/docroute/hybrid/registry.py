"""Backend dispatch and the process-wide client cache."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from docroute.config import HybridConfig
from docroute.errors import ConfigurationError
from docroute.hybrid.azure import AzureClient, AzureSchemaTransformer
from docroute.hybrid.base import BackendClient, SchemaTransformer
from docroute.hybrid.docling import DEFAULT_URL as DOCLING_DEFAULT_URL
from docroute.hybrid.docling import DoclingClient, DoclingSchemaTransformer
from docroute.models import BackendType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendStrategy:
    """Everything needed to talk to one backend type."""

    backend_type: BackendType
    client_factory: Callable[..., BackendClient]
    transformer_factory: Callable[[], SchemaTransformer]
    default_url: Optional[str] = None
    requires_api_key: bool = False
    description: str = ""

    def create_client(self, config: HybridConfig) -> BackendClient:
        return self.client_factory(config, default_url=self.default_url)

    def create_transformer(self) -> SchemaTransformer:
        return self.transformer_factory()


STRATEGIES: dict[BackendType, BackendStrategy] = {
    BackendType.DOCLING: BackendStrategy(
        backend_type=BackendType.DOCLING,
        client_factory=DoclingClient,
        transformer_factory=DoclingSchemaTransformer,
        default_url=DOCLING_DEFAULT_URL,
        requires_api_key=False,
        description="Docling Serve (self-hosted)",
    ),
    BackendType.AZURE: BackendStrategy(
        backend_type=BackendType.AZURE,
        client_factory=AzureClient,
        transformer_factory=AzureSchemaTransformer,
        default_url=None,
        requires_api_key=True,
        description="Azure Document Intelligence (prebuilt-layout)",
    ),
}


def resolve_strategy(
    backend: Optional[BackendType],
    strategies: Optional[dict[BackendType, BackendStrategy]] = None,
) -> BackendStrategy:
    """Look up the strategy for a backend type.

    Raises:
        ConfigurationError: If hybrid processing is off or the type is unknown.
    """
    if backend is None:
        raise ConfigurationError("Hybrid processing is disabled; no backend to resolve")
    try:
        return (strategies if strategies is not None else STRATEGIES)[backend]
    except KeyError:
        raise ConfigurationError(f"No strategy registered for backend '{backend}'") from None


class ClientRegistry:
    """
    Caches one client per backend type for the life of the process.

    The first configuration seen for a backend type wins; later calls with
    a different URL or key get the cached client.
    """

    def __init__(self, strategies: Optional[dict[BackendType, BackendStrategy]] = None):
        self._strategies = strategies if strategies is not None else STRATEGIES
        self._clients: dict[BackendType, BackendClient] = {}
        self._lock = threading.Lock()

    def strategy_for(self, backend: Optional[BackendType]) -> BackendStrategy:
        return resolve_strategy(backend, self._strategies)

    def get_or_create(self, config: HybridConfig) -> BackendClient:
        """Return the cached client for the configured backend, creating it once.

        Raises:
            ConfigurationError: If the backend is unknown or the client
                rejects the configuration.
        """
        strategy = self.strategy_for(config.backend)
        client = self._clients.get(strategy.backend_type)
        if client is not None:
            return client

        with self._lock:
            client = self._clients.get(strategy.backend_type)
            if client is None:
                client = strategy.create_client(config)
                self._clients[strategy.backend_type] = client
                logger.debug(f"Created {strategy.backend_type.value} client")
            return client

    def is_cached(self, backend: BackendType) -> bool:
        with self._lock:
            return backend in self._clients

    def shutdown(self) -> None:
        """Close every cached client and clear the cache."""
        with self._lock:
            clients = list(self._clients.items())
            self._clients.clear()

        for backend, client in clients:
            try:
                client.close()
            except Exception as e:
                logger.warning(f"Failed to close {backend.value} client: {e}")


# Process-wide registry used by the orchestrator and shut down by the CLI
default_registry = ClientRegistry()
