# src/spread_monitor/arbitrage/alert_policy.py
"""
Alert suppression for the spread monitor.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .arbitrage_detector import ArbitrageOpportunity, Direction

logger = logging.getLogger(__name__)


@dataclass
class AlertPolicy:
    """
    Very small alert gate used by the monitor loop.

    Responsibilities:
      - Decide whether an opportunity should produce a notification now.
      - Remember when each direction last alerted.

    With cooldown_sec == 0 every qualifying cycle alerts.
    """

    cooldown_sec: float = 0.0
    clock: Callable[[], float] = time.monotonic
    _last_sent: Dict[Direction, float] = field(default_factory=dict)

    def should_alert(self, opp: ArbitrageOpportunity, now: Optional[float] = None) -> bool:
        if self.cooldown_sec <= 0:
            return True

        now = self.clock() if now is None else now
        last = self._last_sent.get(opp.direction)
        if last is not None and now - last < self.cooldown_sec:
            logger.debug(
                f"Suppressing alert {opp.direction.value}: last sent {now - last:.1f}s ago "
                f"< cooldown {self.cooldown_sec:.1f}s"
            )
            return False

        self._last_sent[opp.direction] = now
        return True

    def reset(self, direction: Optional[Direction] = None) -> None:
        if direction is None:
            self._last_sent.clear()
        else:
            self._last_sent.pop(direction, None)
