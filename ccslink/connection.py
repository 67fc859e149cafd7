"""Connection manager: derives an overall connection level from ok-reports."""

from __future__ import annotations

import enum
from typing import Optional

from ccslink.diagnostics import Diagnostics, LogModule

CYCLES_PER_SECOND = 33  # 30 ms call cycle
TIMER_MAX = 5 * CYCLES_PER_SECOND
TIMER_MAX_10S = 10 * CYCLES_PER_SECOND
TIMER_MAX_20S = 20 * CYCLES_PER_SECOND


class ConnectionLevel(enum.IntEnum):
    """How far the connection to the charger has come."""

    NONE = 0
    ETH_LINK_PRESENT = 5
    ONE_MODEM_FOUND = 10
    SLAC_ONGOING = 15
    TWO_MODEMS_FOUND = 20
    SDP_DONE = 50
    TCP_RUNNING = 80
    APPL_RUNNING = 100


# Order used in the periodic debug line.
_DEBUG_ORDER = (
    ConnectionLevel.ETH_LINK_PRESENT,
    ConnectionLevel.ONE_MODEM_FOUND,
    ConnectionLevel.TWO_MODEMS_FOUND,
    ConnectionLevel.SLAC_ONGOING,
    ConnectionLevel.SDP_DONE,
    ConnectionLevel.TCP_RUNNING,
    ConnectionLevel.APPL_RUNNING,
)


class ConnectionManager:
    """Keeps one forget-timer per layer; a good upper layer implies the lower ones.

    Each ok-report rewinds the timer of its layer. ``tick`` is called every
    30 ms; the level is the highest layer whose timer is still running.
    """

    def __init__(self, diagnostics: Optional[Diagnostics] = None) -> None:
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self._timers = {level: 0 for level in _DEBUG_ORDER}
        self.level = ConnectionLevel.NONE
        self._previous_level = ConnectionLevel.NONE
        self._cycles = 0

    def _debug_infos(self) -> None:
        timers = " ".join(str(self._timers[level]) for level in _DEBUG_ORDER)
        self.diagnostics.trace(
            LogModule.CONNMGR, f"[CONNMGR] {timers} --> {int(self.level)}"
        )

    def tick(self) -> ConnectionLevel:
        """Run one 30 ms cycle and return the resulting connection level."""
        for level, remaining in self._timers.items():
            if remaining > 0:
                self._timers[level] = remaining - 1

        self.level = max(
            (level for level, remaining in self._timers.items() if remaining > 0),
            default=ConnectionLevel.NONE,
        )

        # The modem is reached over SPI, so the Ethernet link is always up.
        self._timers[ConnectionLevel.ETH_LINK_PRESENT] = TIMER_MAX

        if self.level != self._previous_level:
            self.diagnostics.trace(
                LogModule.CONNMGR,
                f"[CONNMGR] ConnectionLevel changed from {int(self._previous_level)} "
                f"to {int(self.level)}.",
            )
            self._previous_level = self.level

        if self._cycles % CYCLES_PER_SECOND == 0:
            self._debug_infos()
            if self.level < ConnectionLevel.ETH_LINK_PRESENT:
                self.diagnostics.publish_status("Eth", "no link")
        self._cycles = (self._cycles + 1) & 0xFFFF
        return self.level

    def modem_finder_ok(self, modem_count: int) -> None:
        """Report how many modems answered the software-version request."""
        if modem_count >= 1:
            self._timers[ConnectionLevel.ONE_MODEM_FOUND] = TIMER_MAX
        if modem_count >= 2:
            # Extra time so the SLAC sequence does not time out too fast.
            self._timers[ConnectionLevel.TWO_MODEMS_FOUND] = TIMER_MAX_10S

    def slac_ok(self) -> None:
        """Report that the key was set; the modems need time to restart and pair."""
        self._timers[ConnectionLevel.SLAC_ONGOING] = TIMER_MAX_20S

    def sdp_ok(self) -> None:
        """Report a successful SECC discovery."""
        self._timers[ConnectionLevel.SDP_DONE] = TIMER_MAX

    def tcp_ok(self) -> None:
        """Report a working TCP connection."""
        self._timers[ConnectionLevel.TCP_RUNNING] = TIMER_MAX

    def appl_ok(self, timeout_seconds: int) -> None:
        """Report working application traffic, valid for ``timeout_seconds``."""
        self._timers[ConnectionLevel.APPL_RUNNING] = (
            (timeout_seconds & 0xFF) * CYCLES_PER_SECOND
        )