"""Platform fetcher contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple


PlatformKey = Literal["instagram", "tiktok", "youtube"]

SUPPORTED_PLATFORMS: Tuple[str, ...] = ("instagram", "tiktok", "youtube")


class ConnectorUnavailableError(RuntimeError):
    """Raised when a platform connector is not configured or disabled."""


class PlatformFetchError(RuntimeError):
    """Transient upstream failure (network, quota, rate limit)."""

    def __init__(self, platform: str, message: str) -> None:
        super().__init__(f"{platform}: {message}")
        self.platform = platform


class UnsupportedPlatformError(ValueError):
    """Raised for platform names outside SUPPORTED_PLATFORMS."""

    def __init__(self, platform: Optional[str]) -> None:
        super().__init__(f"Unsupported platform: {platform}")
        self.platform = platform


class UserNotFoundError(LookupError):
    """Raised when a sync targets an unknown user."""


def normalize_platform(platform: Optional[str]) -> str:
    key = str(platform or "").strip().lower()
    if key not in SUPPORTED_PLATFORMS:
        raise UnsupportedPlatformError(platform)
    return key


@dataclass(frozen=True)
class RawTrendItem:
    id: str
    title: str
    description: str = ""
    hashtags: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    audio_track: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RawMediaMetrics:
    media_id: str
    media_type: str
    timestamp: Optional[datetime]
    metrics: Dict[str, Any]
    platform_specific: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AccountRef:
    platform: PlatformKey
    account_id: str
    access_token: str
    handle: Optional[str] = None


@dataclass(frozen=True)
class ConnectedUser:
    user_id: str
    platforms: List[str]
