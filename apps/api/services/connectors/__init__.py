"""Public platform fetcher utilities."""

from services.connectors.providers import (
    BaseAnalyticsFetcher,
    BaseTrendFetcher,
    FetcherRegistry,
    build_default_registry,
    connector_capabilities,
)
from services.connectors.types import (
    SUPPORTED_PLATFORMS,
    AccountRef,
    ConnectedUser,
    ConnectorUnavailableError,
    PlatformFetchError,
    PlatformKey,
    RawMediaMetrics,
    RawTrendItem,
    UnsupportedPlatformError,
    UserNotFoundError,
    normalize_platform,
)

__all__ = [
    "SUPPORTED_PLATFORMS",
    "AccountRef",
    "BaseAnalyticsFetcher",
    "BaseTrendFetcher",
    "ConnectedUser",
    "ConnectorUnavailableError",
    "FetcherRegistry",
    "PlatformFetchError",
    "PlatformKey",
    "RawMediaMetrics",
    "RawTrendItem",
    "UnsupportedPlatformError",
    "UserNotFoundError",
    "build_default_registry",
    "connector_capabilities",
    "normalize_platform",
]
