"""Trace output, checkpoints and status lines shared by the charging stack."""

from __future__ import annotations

import enum
import sys
import time
from typing import Callable, Iterable, Optional, TextIO


class LogModule(enum.IntFlag):
    """Software modules whose trace output can be switched on individually."""

    CONNMGR = 1
    HWIF = 2
    HOMEPLUG = 4
    IPV6 = 8
    MODEMFINDER = 16
    PEV = 32
    TCP = 64


StatusListener = Callable[[str, str], None]


class Diagnostics:
    """Collects trace messages, the current checkpoint and the status display lines.

    ``logging`` is the set of modules whose traces are written to ``stream``.
    ``clock`` returns the time in milliseconds; by default it counts from the
    creation of the object.
    """

    def __init__(
        self,
        logging: LogModule = LogModule(0),
        clock: Optional[Callable[[], int]] = None,
        stream: Optional[TextIO] = None,
        on_status: Optional[StatusListener] = None,
    ) -> None:
        self.logging = LogModule(logging)
        self._start = time.monotonic()
        self._clock = clock
        self._stream = stream
        self.on_status = on_status
        self.checkpoint = 0
        self.status: tuple[str, str] = ("", "")

    def now_ms(self) -> int:
        """Milliseconds on the diagnostic clock, wrapped to 32 bits."""
        if self._clock is not None:
            value = self._clock()
        else:
            value = int((time.monotonic() - self._start) * 1000)
        return value & 0xFFFFFFFF

    def trace(self, module: LogModule, text: str, data: Optional[Iterable[int]] = None) -> None:
        """Write a timestamped line if tracing of ``module`` is enabled.

        When ``data`` is given, its bytes follow the text as lower-case hex.
        """
        if not (self.logging & module):
            return
        line = f"[{self.now_ms()}] {text}"
        if data is not None:
            line += " " + bytes(data).hex()
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(line + "\n")

    def set_checkpoint(self, value: int) -> None:
        """Record the progress checkpoint of the charging sequence."""
        self.checkpoint = value & 0xFFFF

    def publish_status(self, line1: str, line2: str = "") -> None:
        """Store the two status lines and hand them to the listener, if any."""
        self.status = (line1, line2)
        if self.on_status is not None:
            self.on_status(line1, line2)