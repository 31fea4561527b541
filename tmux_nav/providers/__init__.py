"""Provider registry and discovery."""

from typing import Optional, Type

from ..config import NavConfig
from .base import EnrichmentProvider, ProviderError

# Registry of all enrichment providers, keyed by category
_PROVIDERS: dict[str, Type[EnrichmentProvider]] = {}


def register_provider(provider_class: Type[EnrichmentProvider]) -> Type[EnrichmentProvider]:
    """Decorator to register a provider class."""
    _PROVIDERS[provider_class.name] = provider_class
    return provider_class


def get_provider(name: str, config: Optional[NavConfig] = None) -> EnrichmentProvider | None:
    """Get an instance of a provider by name."""
    provider_class = _PROVIDERS.get(name)
    if provider_class:
        return provider_class(config)
    return None


def get_all_providers(config: Optional[NavConfig] = None) -> list[EnrichmentProvider]:
    """Get instances of all registered providers."""
    return [cls(config) for cls in _PROVIDERS.values()]


def get_available_providers(config: Optional[NavConfig] = None) -> list[EnrichmentProvider]:
    """Get instances of all providers whose tools are present."""
    return [p for p in get_all_providers(config) if p.is_available()]


__all__ = [
    "EnrichmentProvider",
    "ProviderError",
    "register_provider",
    "get_provider",
    "get_all_providers",
    "get_available_providers",
]


# Import providers to trigger registration
from . import git  # noqa: F401, E402
from . import agents  # noqa: F401, E402
from . import notes  # noqa: F401, E402
from . import plans  # noqa: F401, E402
