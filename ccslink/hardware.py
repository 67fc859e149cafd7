"""Hardware abstraction for the charge port: CP line, LEDs, contactors and connector lock."""

from __future__ import annotations

import enum
from typing import Callable, Optional

from ccslink.diagnostics import Diagnostics, LogModule
from ccslink.pushbutton import PushButton

CAN_TIMEOUT = 10  # multiples of 100 ms
CP_DUTY_VALID_TIMER_MAX = 3  # cycles of 30 ms without PWM capture until the CP is lost
CONTACTOR_CYCLES_FOR_FULL_PWM = 33 * 2
TEST_MODE_CODE = 3411
LOCK_CYCLE_MS = 30


class LockState(enum.IntEnum):
    """State of the connector lock actuator."""

    UNKNOWN = 0
    OPEN = 1
    CLOSED = 2
    OPENING = 3
    CLOSING = 4


class HardwareInterface:
    """Drives the charge port outputs and evaluates its inputs every 30 ms.

    The parameter attributes (voltages, thresholds, ...) play the role of the
    configurable parameter set; the output attributes (``state_c``, ``leds``,
    ``hbridge``, ``contactor_pwm``, ``lock_status``, ``cp_duty``) reflect what
    would be driven on the hardware. ``pwm_period`` is the full-scale value of
    the lock and contactor PWM outputs.
    """

    def __init__(
        self,
        diagnostics: Optional[Diagnostics] = None,
        pushbutton: Optional[PushButton] = None,
        pwm_period: int = 4096,
    ) -> None:
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.pushbutton = pushbutton if pushbutton is not None else PushButton()
        self.pwm_period = pwm_period

        # Parameters
        self.inlet_voltage = 0
        self.demo_voltage = 0
        self.battery_voltage = 0
        self.target_voltage = 0
        self.charge_current = 0
        self.soc = 0
        self.enable = True
        self.can_watchdog = 0
        self.watchdog_disabled = False
        self.lock_open_threshold = 0
        self.lock_closed_threshold = 0
        self.lock_runtime_ms = 0
        self.lock_pwm_percent = 0
        self.economizer_percent = 100

        # Outputs
        self.state_c = False
        self.leds = 0
        self.hbridge: tuple[int, int] = (0, 0)
        self.contactor_pwm: tuple[int, int] = (0, 0)
        self.lock_status = LockState.UNKNOWN
        self.cp_duty = 0

        self.simulated_soc = 0  # in 0.01 %
        self.precharge_cycles = 0

        self._cp_valid_timer = 0
        self._cp_capture: Optional[tuple[int, int]] = None
        self._test_mode = 0
        self._contactor_request = False
        self._contactor_on_timer = 0
        self._led_blink_divider = 0
        self._lock_request = LockState.UNKNOWN
        self._lock_state = LockState.UNKNOWN
        self._lock_target = LockState.UNKNOWN
        self._lock_timer = 0
        self._last_feedback = 0
        self._lock_closed_time = 0

        self._test_steps: tuple[Callable[[], None], ...] = self._build_test_steps()

    # --- simple inputs and outputs -------------------------------------

    def set_state_b(self) -> None:
        """Release the CP line to state B."""
        self.state_c = False

    def set_state_c(self) -> None:
        """Pull the CP line to state C (ready to charge)."""
        self.state_c = True

    def set_power_relay_on(self) -> None:
        """Request the charge port contactors to close."""
        self._contactor_request = True

    def set_power_relay_off(self) -> None:
        """Request the charge port contactors to open."""
        self._contactor_request = False

    def set_rgb(self, rgb: int) -> None:
        """Set the LEDs: bit 0 red, bit 1 green, bit 2 blue."""
        self.leds = rgb & 7

    def trigger_connector_locking(self) -> None:
        """Ask the lock actuator to close."""
        self._lock_request = LockState.CLOSED

    def trigger_connector_unlocking(self) -> None:
        """Ask the lock actuator to open."""
        self._lock_request = LockState.OPEN

    def is_connector_locked(self) -> bool:
        """True if the lock (real or simulated) reports closed."""
        return self._lock_state == LockState.CLOSED

    def get_power_relay_confirmation(self) -> bool:
        """Contactor feedback; not measured, always confirmed."""
        return True

    def stop_charging(self) -> bool:
        """True if the user, the enable flag or the CAN watchdog demands a stop."""
        return (
            self.pushbutton.is_pressed_500ms()
            or not self.enable
            or (self.can_watchdog >= CAN_TIMEOUT and not self.watchdog_disabled)
        )

    def get_is_accu_full(self) -> bool:
        """True above 95 % state of charge."""
        return self.soc > 95

    def get_soc(self) -> int:
        """State of charge in percent."""
        return self.soc

    def simulate_charging(self) -> None:
        """Let the simulated state of charge rise by 0.01 %, up to 100 %."""
        if self.simulated_soc < 10000:
            self.simulated_soc += 1

    def simulate_precharge(self) -> None:
        """Count one simulated precharge cycle; no output is changed."""
        self.precharge_cycles += 1

    def reset_simulation(self) -> None:
        """Restart the simulated state of charge at 20 %."""
        self.simulated_soc = 2000

    def _demo_voltage_plausible(self) -> bool:
        return 150 <= self.demo_voltage <= 250

    def get_accu_voltage(self) -> int:
        """Battery voltage; a plausible demo voltage overrides it."""
        if self._demo_voltage_plausible():
            self.battery_voltage = self.demo_voltage
        return self.battery_voltage

    def get_inlet_voltage(self) -> int:
        """Voltage measured at the charge inlet."""
        return self.inlet_voltage

    def get_charging_target_voltage(self) -> int:
        """Target voltage; a plausible demo voltage overrides it."""
        if self._demo_voltage_plausible():
            self.target_voltage = self.demo_voltage
        return self.target_voltage

    def get_charging_target_current(self) -> int:
        """Requested charge current."""
        return self.charge_current

    # --- output test mode ----------------------------------------------

    def _set_hbridge(self, out1: int, out2: int) -> None:
        self.hbridge = (out1, out2)

    def _set_contactor_pwm(self, out1: int, out2: int) -> None:
        self.contactor_pwm = (out1, out2)

    def _build_test_steps(self) -> tuple[Callable[[], None], ...]:
        full = self.pwm_period
        half = full // 2
        tenth = full // 10
        rgb = self.set_rgb
        bridge = self._set_hbridge
        contactor = self._set_contactor_pwm
        return (
            lambda: rgb(1),
            lambda: rgb(0),
            lambda: rgb(2),
            lambda: rgb(0),
            lambda: rgb(4),
            lambda: rgb(0),
            lambda: rgb(7),
            lambda: rgb(0),
            lambda: bridge(0, 0),
            lambda: bridge(tenth, 0),
            lambda: bridge(half, 0),
            lambda: bridge(full, 0),
            lambda: bridge(0, 0),
            lambda: bridge(0, tenth),
            lambda: bridge(0, half),
            lambda: bridge(0, full),
            lambda: bridge(0, 0),
            lambda: contactor(0, 0),
            lambda: contactor(full, 0),
            lambda: contactor(half, 0),
            lambda: contactor(0, full),
            lambda: contactor(0, half),
            lambda: contactor(0, 0),
        )

    def handle_output_test_mode(self) -> None:
        """Step through all outputs once the button code 3411 was entered."""
        if self.pushbutton.accumulated_digits() == TEST_MODE_CODE and self._test_mode == 0:
            self._test_mode = 1
        if self._test_mode == 0:
            return
        self._test_steps[self._test_mode - 1]()
        self._test_mode += 1
        if self._test_mode > len(self._test_steps):
            self._test_mode = 1

    # --- cyclic handling -----------------------------------------------

    def _read_lock_state(self, feedback: int) -> LockState:
        open_thresh = self.lock_open_threshold
        closed_thresh = self.lock_closed_threshold
        delta = feedback - self._last_feedback
        state = LockState.UNKNOWN

        if closed_thresh > open_thresh:
            if feedback > closed_thresh:
                state = LockState.CLOSED
            elif feedback < open_thresh:
                state = LockState.OPEN
            elif delta < 10:
                state = LockState.OPENING
            elif delta > 10:
                state = LockState.CLOSING
        elif closed_thresh < open_thresh:
            if feedback < closed_thresh:
                state = LockState.CLOSED
            elif feedback > open_thresh:
                state = LockState.OPEN
            elif delta > 10:
                state = LockState.OPENING
            elif delta < 10:
                state = LockState.CLOSING

        now = self.diagnostics.now_ms()
        if state == LockState.CLOSED:
            self._lock_closed_time = now
        # Report "opening" for at least the lock run time after leaving closed.
        recently_closed = ((now - self._lock_closed_time) & 0xFFFFFFFF) < (
            self.lock_runtime_ms & 0xFFFFFFFF
        )
        if state == LockState.OPEN and recently_closed:
            state = LockState.OPENING

        self._last_feedback = feedback
        return state

    def _handle_contactor_requests(self) -> None:
        if self._test_mode != 0:
            return
        if not self._contactor_request:
            self._set_contactor_pwm(0, 0)
            self._contactor_on_timer = 0
            return
        if self._contactor_on_timer < 255:
            self._contactor_on_timer += 1
        if self._contactor_on_timer < CONTACTOR_CYCLES_FOR_FULL_PWM:
            self._set_contactor_pwm(self.pwm_period, self.pwm_period)
            self.diagnostics.trace(LogModule.HWIF, "Turning on charge port contactors")
        else:
            duty = (self.economizer_percent * self.pwm_period) // 100
            self._set_contactor_pwm(duty, duty)

    def _handle_lock_requests(self, feedback: int) -> None:
        if self._test_mode != 0:
            return
        half = self.pwm_period // 2
        swing = (self.pwm_period * self.lock_pwm_percent) // 100
        pwm_neg = half - swing
        pwm_pos = half + swing

        if self.lock_closed_threshold != self.lock_open_threshold:
            self._lock_state = self._read_lock_state(feedback)
            if self._lock_request == LockState.OPEN and self._lock_state != LockState.OPEN:
                self.lock_status = LockState.OPENING
                self._set_hbridge(pwm_neg, pwm_pos)
            elif self._lock_request == LockState.CLOSED and self._lock_state != LockState.CLOSED:
                self.lock_status = LockState.CLOSING
                self._set_hbridge(pwm_pos, pwm_neg)
            else:
                self.lock_status = self._lock_state
                self._set_hbridge(0, 0)
            return

        # No feedback: drive the motor for the configured run time.
        pwm_neg = 0
        pwm_pos = self.pwm_period
        run_cycles = (self.lock_runtime_ms // LOCK_CYCLE_MS) & 0xFFFF
        if self._lock_request == LockState.OPEN:
            self.diagnostics.trace(LogModule.HWIF, "unlocking the connector")
            self.lock_status = LockState.OPENING
            self._set_hbridge(pwm_neg, pwm_pos)
            self._lock_timer = run_cycles
            self._lock_target = LockState.OPEN
            self._lock_request = LockState.UNKNOWN
        if self._lock_request == LockState.CLOSED:
            self.diagnostics.trace(LogModule.HWIF, "locking the connector")
            self.lock_status = LockState.CLOSING
            self._set_hbridge(pwm_pos, pwm_neg)
            self._lock_timer = run_cycles
            self._lock_target = LockState.CLOSED
            self._lock_request = LockState.UNKNOWN
        if self._lock_timer > 0:
            self._lock_timer -= 1
            if self._lock_timer == 0:
                self._set_hbridge(0, 0)
                self.lock_status = self._lock_target
                self._lock_state = self._lock_target
                self.diagnostics.trace(LogModule.HWIF, "finished connector (un)locking")

    def _handle_application_leds(self) -> None:
        if self._test_mode != 0:
            return
        self._led_blink_divider = (self._led_blink_divider + 1) & 0xFF
        blink = self._led_blink_divider
        checkpoint = self.diagnostics.checkpoint
        if checkpoint < 100:
            # Modem sleeping, defective or still being searched.
            self.set_rgb(7)
            return
        if 100 <= checkpoint < 150:
            self.set_rgb(2)
        if 150 < checkpoint <= 530:
            self.set_rgb(2 if blink & 4 else 0)
        if 540 <= checkpoint < 560:
            self.set_rgb(2 if blink & 2 else 0)
        if 560 <= checkpoint < 700:
            self.set_rgb(4 if blink & 2 else 0)
        if 700 <= checkpoint < 800:
            self.set_rgb(4)
        if 800 <= checkpoint < 900:
            self.set_rgb(4 if blink & 1 else 2)
        if checkpoint == 900:
            self.set_rgb(6)
        if checkpoint > 1000:
            self.set_rgb(1)

    def cyclic(self, cp_capture: Optional[tuple[int, int]] = None, lock_feedback: int = 0) -> None:
        """Run one 30 ms cycle.

        ``cp_capture`` is a fresh ``(period, high_time)`` capture of the CP PWM,
        or None if no edge was captured this cycle. ``lock_feedback`` is the
        analog value of the lock position sensor.
        """
        if cp_capture is not None:
            self._cp_capture = cp_capture
            self._cp_valid_timer = CP_DUTY_VALID_TIMER_MAX

        if self._cp_valid_timer > 0:
            self._cp_valid_timer -= 1
            period, high_time = self._cp_capture if self._cp_capture else (0, 0)
            self.cp_duty = (100 * high_time) // period if period else 0
        else:
            self.cp_duty = 0

        self._handle_application_leds()
        self._handle_contactor_requests()
        self._handle_lock_requests(lock_feedback)
        self.handle_output_test_mode()

    def reset_outputs(self) -> None:
        """Switch the lock H-bridge and both contactors off."""
        self._set_hbridge(0, 0)
        self._set_contactor_pwm(0, 0)