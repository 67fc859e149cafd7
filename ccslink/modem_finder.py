"""Periodic search for HomePlug modems while no connection is present."""

from __future__ import annotations

from typing import Optional

from ccslink.connection import ConnectionLevel, ConnectionManager
from ccslink.diagnostics import Diagnostics, LogModule
from ccslink.homeplug import Homeplug

WAIT_CYCLES = 15  # about half a second at a 30 ms cycle


class ModemFinder:
    """Asks all modems for their software version and counts the answers.

    ``state`` is 0 when idle, 1 while collecting answers and 2 while the
    result is shown before a new search may begin.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        homeplug: Homeplug,
        diagnostics: Optional[Diagnostics] = None,
    ) -> None:
        self.connection = connection
        self.homeplug = homeplug
        self.diagnostics = diagnostics if diagnostics is not None else homeplug.diagnostics
        self.state = 0
        self._delay = 0

    def _wait(self) -> bool:
        if self._delay > 0:
            self._delay -= 1
            return True
        return False

    def tick(self) -> None:
        """Run one 30 ms cycle of the modem search."""
        if self.connection.level == ConnectionLevel.ETH_LINK_PRESENT and self.state == 0:
            self.diagnostics.trace(LogModule.MODEMFINDER, "[ModemFinder] Starting modem search")
            self.diagnostics.publish_status("Modem search", "")
            self.homeplug.send_test_frame()
            self.diagnostics.set_checkpoint(6)
            self.homeplug.number_of_software_version_responses = 0
            self._delay = WAIT_CYCLES
            self.state = 1
            return
        if self.state == 1:
            if self._wait():
                return
            count = self.homeplug.number_of_software_version_responses
            self.diagnostics.trace(
                LogModule.MODEMFINDER, "[ModemFinder] Number of modems:", [count]
            )
            self.diagnostics.publish_status("Modems:", str(count))
            if count > 0:
                self.connection.modem_finder_ok(count)
            self._delay = WAIT_CYCLES
            self.state = 2
            return
        if self.state == 2:
            if self._wait():
                return
            self.state = 0