"""Push-button evaluation: press duration and series of press counts."""

from __future__ import annotations

from collections import deque

CYCLES_PER_SECOND = 33  # 30 ms call cycle
NUMBER_OF_ENTRIES = 4
PRESSED_THRESHOLD = 1000


class PushButton:
    """Evaluates a push button sampled every 30 ms from an analog input.

    A pause of half a second closes a series of presses; the press counts of
    the last four series form a four-digit number once four series were seen.
    Five seconds without pressing reset everything.
    """

    def __init__(self) -> None:
        self._release_time = 0
        self._press_time = 0
        self._presses = 0
        self._series_counter = 0
        self._accumulated = 0
        self._was_pressed = False
        self._entries: deque[int] = deque([0] * NUMBER_OF_ENTRIES, maxlen=NUMBER_OF_ENTRIES)

    def _process_series(self) -> None:
        self._entries.append(self._presses)
        value = 0
        for entry in self._entries:
            value = (value * 10 + entry) & 0xFFFF
        self._series_counter = (self._series_counter + 1) & 0xFF
        if self._series_counter == NUMBER_OF_ENTRIES:
            self._accumulated = value

    def _reset_series(self) -> None:
        self._entries.extend([0] * NUMBER_OF_ENTRIES)
        self._series_counter = 0
        self._accumulated = 0
        self._press_time = 0

    def handle(self, analog_value: int) -> None:
        """Process one sample of the button's analog input."""
        pressed = analog_value < PRESSED_THRESHOLD
        limit = CYCLES_PER_SECOND * 60
        if pressed:
            if not self._was_pressed:
                self._release_time = 0
                self._presses = (self._presses + 1) & 0xFF
                self._press_time = 0
            if self._press_time < limit:
                self._press_time += 1
        else:
            if self._release_time < limit:
                self._release_time += 1
            if self._release_time == CYCLES_PER_SECOND // 2:
                self._process_series()
                self._presses = 0
            if self._release_time == CYCLES_PER_SECOND * 5:
                self._reset_series()
        self._was_pressed = pressed

    def is_pressed_500ms(self) -> bool:
        """True if the current or last press lasted longer than half a second."""
        return self._press_time > CYCLES_PER_SECOND // 2

    def accumulated_digits(self) -> int:
        """The four-digit number formed by the last four press series, or 0."""
        return self._accumulated