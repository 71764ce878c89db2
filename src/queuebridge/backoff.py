"""PollBackoff: pacing for a receive loop after failed poll calls."""

from __future__ import annotations

import asyncio
import random


class PollBackoff:
    """Counts consecutive poll failures and sleeps between re-polls.

    The delay after the n-th failure in a row is ``base_delay * 2**(n-1)``,
    capped at *max_delay* and optionally scaled by a random factor in
    [0.5, 1.5]. A successful poll resets the count. Once *max_failures*
    failures pile up, :meth:`record_failure` reports that the loop should
    give up.
    """

    def __init__(
        self,
        *,
        max_failures: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: bool = True,
    ) -> None:
        if max_failures < 1:
            raise ValueError("max_failures must be >= 1")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("base_delay and max_delay must be >= 0")
        if base_delay > max_delay:
            raise ValueError("base_delay must be <= max_delay")
        self.max_failures = max_failures
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._failures = 0

    @property
    def failures(self) -> int:
        """Failed polls since the last success."""
        return self._failures

    def reset(self) -> None:
        self._failures = 0

    def record_failure(self) -> bool:
        """Count one failed poll; return False once the limit is reached."""
        self._failures += 1
        return self._failures < self.max_failures

    def current_delay(self) -> float:
        if self._failures == 0:
            return 0.0
        delay = min(self.base_delay * 2 ** (self._failures - 1), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random()  # noqa: S311
        return delay

    async def sleep(self) -> None:
        delay = self.current_delay()
        if delay > 0:
            await asyncio.sleep(delay)
