"""Factory for creating and configuring source adapter instances."""

from typing import Dict, List, Optional, Type

import structlog

from pricetrail.scrapers.base import BaseSourceAdapter, RenderedSourceAdapter
from pricetrail.scrapers.utils.browser_manager import BrowserManager, get_browser_manager
from pricetrail.scrapers.utils.fetch_policy import FetchPolicy

logger = structlog.get_logger(__name__)


class AdapterFactory:
    """Factory for creating and configuring adapter instances.

    Provides dependency injection for the shared fetch policy, the shared
    browser and the per-run unit-of-work factory.
    """

    def __init__(
        self,
        fetch_policy: Optional[FetchPolicy] = None,
        browser_manager: Optional[BrowserManager] = None,
    ):
        """Initialize the adapter factory.

        Args:
            fetch_policy: Shared retry/circuit policy (one per process)
            browser_manager: Shared Playwright browser (started lazily)
        """
        self.fetch_policy = fetch_policy or FetchPolicy()
        self.browser_manager = browser_manager or get_browser_manager()

        # Registry of adapter classes, in registration order
        self._adapter_registry: Dict[str, Type[BaseSourceAdapter]] = {}

    def register_adapter(self, key: str, adapter_class: Type[BaseSourceAdapter]) -> None:
        """Register an adapter class.

        Args:
            key: Registration key (e.g., "the_iconic")
            adapter_class: Adapter class (must inherit from BaseSourceAdapter)
        """
        if not isinstance(adapter_class, type) or not issubclass(adapter_class, BaseSourceAdapter):
            raise ValueError(f"Adapter class must inherit from BaseSourceAdapter: {adapter_class}")

        self._adapter_registry[key] = adapter_class
        logger.info("adapter_registered", key=key, fetch_mode=adapter_class.fetch_mode)

    def create_adapter(self, key: str, unit_of_work) -> Optional[BaseSourceAdapter]:
        """Create and configure an adapter instance.

        Args:
            key: Registration key
            unit_of_work: Factory yielding a PersistenceGateway context manager

        Returns:
            Configured adapter instance, or None if not registered
        """
        adapter_class = self._adapter_registry.get(key)
        if not adapter_class:
            logger.warning("adapter_not_found", key=key)
            return None

        adapter = adapter_class(
            fetch_policy=self.fetch_policy,
            unit_of_work=unit_of_work,
        )
        if isinstance(adapter, RenderedSourceAdapter):
            adapter.browser_manager = self.browser_manager

        return adapter

    def create_all(self, unit_of_work) -> List[BaseSourceAdapter]:
        """Create one fresh instance of every registered adapter, in order."""
        adapters = []
        for key in self._adapter_registry:
            adapter = self.create_adapter(key, unit_of_work)
            if adapter is not None:
                adapters.append(adapter)
        return adapters

    def get_registered_keys(self) -> List[str]:
        return list(self._adapter_registry.keys())

    def has_adapter(self, key: str) -> bool:
        return key in self._adapter_registry

    async def close(self) -> None:
        """Release the shared HTTP client and browser."""
        await self.fetch_policy.close()
        if self.browser_manager.is_started:
            await self.browser_manager.stop()


# Global factory instance, created on first use
_adapter_factory: Optional[AdapterFactory] = None


def get_adapter_factory() -> AdapterFactory:
    """Get the global adapter factory instance.

    Returns:
        AdapterFactory instance
    """
    global _adapter_factory
    if _adapter_factory is None:
        _adapter_factory = AdapterFactory()
    return _adapter_factory
