import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest

from main import app
from routers import rate_limit


CLOCK_START = datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc)


class ManualClock:
    """Test clock: time only moves when the test advances it.

    With ``autoadvance`` every sleep returns at once after moving time forward.
    """

    def __init__(self, start: datetime = CLOCK_START, autoadvance: bool = False) -> None:
        self.current = start
        self.autoadvance = autoadvance
        self.sleeps: List[float] = []
        self._waiters: List[Tuple[datetime, asyncio.Future]] = []

    def now(self) -> datetime:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(float(seconds))
        if self.autoadvance:
            self.current += timedelta(seconds=seconds)
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        self._waiters.append((self.current + timedelta(seconds=seconds), future))
        await future

    async def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        due = [future for wake_at, future in self._waiters if wake_at <= self.current]
        self._waiters = [(wake_at, future) for wake_at, future in self._waiters if wake_at > self.current]
        for future in due:
            if not future.done():
                future.set_result(None)
        for _ in range(10):
            await asyncio.sleep(0)


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous
