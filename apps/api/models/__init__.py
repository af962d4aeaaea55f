"""Models package."""

from .user import User
from .connection import Connection
from .trend import Trend
from .analytics import AnalyticsRecord, AnalyticsDailyRollup
