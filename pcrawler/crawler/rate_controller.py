"""
Per-host delay tracking with exponential backoff.
"""

import logging
from typing import Dict


class RateController:
    """
    Tracks the delay to apply before the next request to each root domain.

    A host starts at min_delay_ms. Each failure doubles its delay up to
    max_delay_ms and a success drops it back to min_delay_ms.
    """

    def __init__(self, min_delay_ms: int = 100, max_delay_ms: int = 3000):
        if min_delay_ms < 0 or max_delay_ms < min_delay_ms:
            raise ValueError("Require 0 <= min_delay_ms <= max_delay_ms")

        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self.host_delays: Dict[str, int] = {}
        self.logger = logging.getLogger(__name__)

    def delay(self, host: str) -> int:
        """Current delay in milliseconds for host, initialising it on first use."""
        return self.host_delays.setdefault(host, self.min_delay_ms)

    def on_success(self, host: str):
        self.host_delays[host] = self.min_delay_ms

    def on_failure(self, host: str):
        current = self.delay(host)
        updated = min(current * 2, self.max_delay_ms)
        self.host_delays[host] = updated
        self.logger.debug(f"Backoff for {host}: {current}ms -> {updated}ms")

    def get_stats(self) -> Dict[str, int]:
        """Get backoff statistics."""
        backed_off = sum(1 for d in self.host_delays.values() if d > self.min_delay_ms)
        return {
            'tracked_hosts': len(self.host_delays),
            'backed_off_hosts': backed_off,
        }
