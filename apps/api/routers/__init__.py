"""Routers package."""

from . import (
    health,
    trends,
    analytics,
)
