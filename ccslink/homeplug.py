"""SLAC pairing and SECC discovery sequencing on the HomePlug modem link."""

from __future__ import annotations

import enum
from typing import Callable, Optional

from ccslink.connection import ConnectionLevel, ConnectionManager
from ccslink.diagnostics import Diagnostics, LogModule
from ccslink.homeplug_frames import (
    BytesLike,
    CM_ATTEN_CHAR,
    CM_GET_KEY,
    CM_GET_SW,
    CM_SET_KEY,
    CM_SLAC_MATCH,
    CM_SLAC_PARAM,
    MAC_LEN,
    MMTYPE_CNF,
    MMTYPE_IND,
    NID_LEN,
    NMK_LEN,
    compose_atten_char_rsp,
    compose_get_key,
    compose_get_sw_req,
    compose_mnbc_sound_ind,
    compose_set_key,
    compose_slac_match_req,
    compose_slac_param_req,
    compose_start_atten_char_ind,
    get_mm_type,
)

DEFAULT_MAC = bytes.fromhex("feedbeefaffe")

SLAC_TIMEOUT_CYCLES = 500
SLAC_PARAM_CNF_TIMEOUT_CYCLES = 33
FIND_MODEMS_WAIT_CYCLES = 10
MAX_EVSE_MODEM_MISSING = 20
SDP_REPETITIONS = 50
SDP_RETRY_DELAY_CYCLES = 15
MAX_VERSION_LEN = 0x30


class SlacState(enum.IntEnum):
    """States of the PEV side SLAC sequencer."""

    INITIAL = 0
    MODEM_SEARCH_ONGOING = 1
    READY_FOR_SLAC = 2
    WAITING_FOR_MODEM_RESTARTED = 3
    WAITING_FOR_SLAC_PARAM_CNF = 4
    SLAC_PARAM_CNF_RECEIVED = 5
    BEFORE_START_ATTEN_CHAR = 6
    SOUNDING = 7
    WAIT_FOR_ATTEN_CHAR_IND = 8
    ATTEN_CHAR_IND_RECEIVED = 9
    DELAY_BEFORE_MATCH = 10
    WAITING_FOR_SLAC_MATCH_CNF = 11
    WAITING_FOR_RESTART2 = 12
    FIND_MODEMS2 = 13
    WAITING_FOR_SW_VERSIONS = 14
    READY_FOR_SDP = 15
    SDP = 16


class SanityCheckError(RuntimeError):
    """Raised when a state machine holds a state it can never legally reach."""


Transmit = Callable[[bytes], None]


def _require(frame: bytes, length: int, what: str) -> None:
    if len(frame) < length:
        raise ValueError(f"{what} needs at least {length} bytes, got {len(frame)}")


class Homeplug:
    """Runs SLAC as the car (PEV) and the SECC discovery retries.

    ``transmit`` sends a complete Ethernet frame to the modem; ``sdp_request``
    sends one SECC discovery request. Both are called every 30 ms cycle at most
    once per step of the sequence.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        transmit: Optional[Transmit] = None,
        sdp_request: Optional[Callable[[], None]] = None,
        diagnostics: Optional[Diagnostics] = None,
        mac: BytesLike = DEFAULT_MAC,
    ) -> None:
        self.connection = connection
        self.diagnostics = diagnostics if diagnostics is not None else connection.diagnostics
        self.transmit: Transmit = transmit if transmit is not None else (lambda frame: None)
        self.sdp_request = sdp_request if sdp_request is not None else (lambda: None)
        self.mac = bytes(mac)
        if len(self.mac) != MAC_LEN:
            raise ValueError("mac must be 6 bytes")

        self.evse_mac = bytes(MAC_LEN)
        self.source_mac = bytes(MAC_LEN)
        self.nid = bytes(NID_LEN)
        self.nmk = bytes(NMK_LEN)
        self.software_version = ""
        self.number_of_software_version_responses = 0
        self.number_of_found_modems = 0
        self.atten_char_number_of_sounds = 0

        self.slac_state = SlacState.READY_FOR_SLAC
        self.cycles_in_state = 0
        self.sdp_state = 0
        self._delay_cycles = 0
        self._remaining_start_atten_char = 0
        self._remaining_sounds = 0
        self._sdp_repetitions = 0
        self._evse_modem_missing = 0

        self._slac_handlers: dict[SlacState, Callable[[], bool]] = {
            SlacState.INITIAL: self._on_initial,
            SlacState.READY_FOR_SLAC: self._on_ready_for_slac,
            SlacState.WAITING_FOR_SLAC_PARAM_CNF: self._on_waiting_for_param_cnf,
            SlacState.SLAC_PARAM_CNF_RECEIVED: self._on_param_cnf_received,
            SlacState.BEFORE_START_ATTEN_CHAR: self._on_before_start_atten_char,
            SlacState.SOUNDING: self._on_sounding,
            SlacState.WAIT_FOR_ATTEN_CHAR_IND: self._on_wait_for_atten_char_ind,
            SlacState.ATTEN_CHAR_IND_RECEIVED: self._on_atten_char_ind_received,
            SlacState.DELAY_BEFORE_MATCH: self._on_delay_before_match,
            SlacState.WAITING_FOR_SLAC_MATCH_CNF: self._on_waiting_for_match_cnf,
            SlacState.WAITING_FOR_RESTART2: self._on_waiting_for_restart2,
            SlacState.FIND_MODEMS2: self._on_find_modems2,
        }
        self._receive_handlers: dict[int, Callable[[bytes], None]] = {
            CM_GET_KEY + MMTYPE_CNF: self._on_get_key_cnf,
            CM_SLAC_MATCH + MMTYPE_CNF: self._on_slac_match_cnf,
            CM_SLAC_PARAM + MMTYPE_CNF: self._on_slac_param_cnf,
            CM_ATTEN_CHAR + MMTYPE_IND: self._on_atten_char_ind,
            CM_SET_KEY + MMTYPE_CNF: self._on_set_key_cnf,
            CM_GET_SW + MMTYPE_CNF: self._on_get_sw_cnf,
        }

    # --- helpers --------------------------------------------------------

    def _trace(self, text: str) -> None:
        self.diagnostics.trace(LogModule.HOMEPLUG, text)

    def _enter(self, state: SlacState) -> None:
        self._trace(f"[PEVSLAC] from {int(self.slac_state)} entering {int(state)}")
        self.slac_state = state
        self.cycles_in_state = 0

    def _is_too_long(self) -> bool:
        return self.cycles_in_state > SLAC_TIMEOUT_CYCLES

    def _consume_delay(self) -> bool:
        """Count down the delay; True while still waiting."""
        if self._delay_cycles > 0:
            self._delay_cycles -= 1
            return True
        return False

    # --- public interface -----------------------------------------------

    def is_evse_modem_found(self) -> bool:
        """Two modems seen means one in the car and one in the charger."""
        return self.number_of_found_modems > 1

    def send_test_frame(self) -> None:
        """Broadcast a GET_SW.REQ to all modems."""
        self.transmit(compose_get_sw_req(self.mac))

    def sanity_check(self) -> None:
        """Raise SanityCheckError if a state machine is in an impossible state."""
        if self.slac_state > SlacState.SDP:
            self._trace("ERROR: Sanity check of the homeplug state machine failed.")
            raise SanityCheckError("homeplug state machine in invalid state")
        if self.sdp_state >= 2:
            self._trace("ERROR: Sanity check of the SDP state machine failed.")
            raise SanityCheckError("SDP state machine in invalid state")

    def run_slac_sequencer(self) -> None:
        """Run one 30 ms cycle of the SLAC sequence."""
        self.cycles_in_state = (self.cycles_in_state + 1) & 0xFFFF
        level = self.connection.level
        # No modem seen, or pairing already done: nothing to do for SLAC.
        if level < ConnectionLevel.ONE_MODEM_FOUND or level >= ConnectionLevel.TWO_MODEMS_FOUND:
            if self.slac_state != SlacState.INITIAL:
                self._enter(SlacState.INITIAL)
            return
        handler = self._slac_handlers.get(self.slac_state)
        if handler is not None and handler():
            return
        self._trace("[PEVSLAC] ERROR: Invalid state reached")
        self._enter(SlacState.INITIAL)

    def run_sdp_state_machine(self) -> None:
        """Run one 30 ms cycle of the SECC discovery retries."""
        level = self.connection.level
        if level < ConnectionLevel.SLAC_ONGOING or level > ConnectionLevel.TWO_MODEMS_FOUND:
            self.sdp_state = 0
            return
        if self.sdp_state == 0:
            self.diagnostics.publish_status("SDP ongoing", "")
            self._trace("[SDP] Checkpoint200: Starting SDP.")
            self.diagnostics.set_checkpoint(200)
            self._delay_cycles = 0
            self._sdp_repetitions = SDP_REPETITIONS
            self.sdp_state = 1
            return
        if self.sdp_state == 1:
            if self._consume_delay():
                return
            if self._sdp_repetitions > 0:
                self.sdp_request()
                self._sdp_repetitions -= 1
                self._delay_cycles = SDP_RETRY_DELAY_CYCLES
                return
            self._trace("[SDP] ERROR: Did not receive SDP response. Giving up.")
            self.sdp_state = 0

    def evaluate_received_packet(self, frame: BytesLike) -> None:
        """Handle a received HomePlug AV management frame."""
        data = bytes(frame)
        handler = self._receive_handlers.get(get_mm_type(data))
        if handler is not None:
            handler(data)

    # --- SLAC sequencer states ------------------------------------------

    def _on_initial(self) -> bool:
        self._enter(SlacState.READY_FOR_SLAC)
        return True

    def _on_ready_for_slac(self) -> bool:
        self.diagnostics.publish_status("Starting SLAC", "")
        self._trace("[PEVSLAC] Checkpoint100: Sending SLAC_PARAM.REQ...")
        self.diagnostics.set_checkpoint(100)
        self.transmit(compose_slac_param_req(self.mac))
        self._enter(SlacState.WAITING_FOR_SLAC_PARAM_CNF)
        return True

    def _on_waiting_for_param_cnf(self) -> bool:
        if self.cycles_in_state >= SLAC_PARAM_CNF_TIMEOUT_CYCLES:
            self._trace("[PEVSLAC] Timeout while waiting for SLAC_PARAM.CNF")
            self._enter(SlacState.INITIAL)
        return True

    def _on_param_cnf_received(self) -> bool:
        self._delay_cycles = 1
        self._remaining_start_atten_char = 3
        self._enter(SlacState.BEFORE_START_ATTEN_CHAR)
        return True

    def _on_before_start_atten_char(self) -> bool:
        if self._consume_delay():
            return True
        if self._remaining_start_atten_char > 0:
            self._remaining_start_atten_char -= 1
            self._trace("[PEVSLAC] transmitting START_ATTEN_CHAR.IND...")
            self.transmit(compose_start_atten_char_ind(self.mac))
            self._delay_cycles = 0
            return True
        self._delay_cycles = 0
        self._remaining_sounds = 10
        self._enter(SlacState.SOUNDING)
        return True

    def _on_sounding(self) -> bool:
        if self._consume_delay():
            return True
        if self._remaining_sounds > 0:
            self._remaining_sounds -= 1
            frame = compose_mnbc_sound_ind(self.mac, self._remaining_sounds)
            self._trace("[PEVSLAC] transmitting MNBC_SOUND.IND...")
            self.diagnostics.set_checkpoint(104)
            self.transmit(frame)
            if self._remaining_sounds == 0:
                self._enter(SlacState.WAIT_FOR_ATTEN_CHAR_IND)
            self._delay_cycles = 0
            return True
        return False

    def _on_wait_for_atten_char_ind(self) -> bool:
        if self._is_too_long():
            self._enter(SlacState.INITIAL)
        return True

    def _on_atten_char_ind_received(self) -> bool:
        self._enter(SlacState.DELAY_BEFORE_MATCH)
        self._delay_cycles = 30
        return True

    def _on_delay_before_match(self) -> bool:
        if self._consume_delay():
            return True
        frame = compose_slac_match_req(self.mac, self.evse_mac)
        self.diagnostics.publish_status("SLAC", "match req")
        self._trace("[PEVSLAC] Checkpoint150: transmitting SLAC_MATCH.REQ...")
        self.diagnostics.set_checkpoint(150)
        self.transmit(frame)
        self._enter(SlacState.WAITING_FOR_SLAC_MATCH_CNF)
        return True

    def _on_waiting_for_match_cnf(self) -> bool:
        if self._is_too_long():
            self._enter(SlacState.INITIAL)
            return True
        self._delay_cycles = 100  # reset wait time after SET_KEY
        return True

    def _on_waiting_for_restart2(self) -> bool:
        if self._consume_delay():
            return True
        self._trace("[PEVSLAC] Checking whether the pairing worked, by GET_KEY.REQ...")
        self.number_of_found_modems = 0
        self._evse_modem_missing = 0
        self.transmit(compose_get_key(self.mac, self.nid))
        self._enter(SlacState.FIND_MODEMS2)
        return True

    def _on_find_modems2(self) -> bool:
        if self.cycles_in_state < FIND_MODEMS_WAIT_CYCLES:
            return True
        self._trace("[PEVSLAC] It was sufficient time to get the answers from the modems.")
        if not self.is_evse_modem_found():
            self._evse_modem_missing += 1
            self._trace("[PEVSLAC] No EVSE seen (yet). Still waiting for it.")
            if self._evse_modem_missing > MAX_EVSE_MODEM_MISSING:
                self._trace(
                    "[PEVSLAC] We lost the connection to the EVSE modem. Back to the beginning."
                )
                self._enter(SlacState.INITIAL)
                return True
            self._delay_cycles = 30
            self._enter(SlacState.WAITING_FOR_RESTART2)
            return True
        self._trace("[PEVSLAC] EVSE is up, pairing successful.")
        self._evse_modem_missing = 0
        self.connection.modem_finder_ok(2)
        self._enter(SlacState.INITIAL)
        return True

    # --- reception handlers ---------------------------------------------

    def _on_get_key_cnf(self, frame: bytes) -> None:
        """The GET_KEY confirmation carries nothing the sequence needs."""

    def _on_slac_param_cnf(self, frame: bytes) -> None:
        self._trace("[PEVSLAC] Checkpoint102: received SLAC_PARAM.CNF")
        self.diagnostics.set_checkpoint(102)
        if self.slac_state == SlacState.WAITING_FOR_SLAC_PARAM_CNF:
            self._delay_cycles = 4
            self._enter(SlacState.SLAC_PARAM_CNF_RECEIVED)

    def _on_atten_char_ind(self, frame: bytes) -> None:
        self._trace("[PEVSLAC] received ATTEN_CHAR.IND")
        if self.slac_state != SlacState.WAIT_FOR_ATTEN_CHAR_IND:
            return
        _require(frame, 70, "ATTEN_CHAR.IND")
        self.evse_mac = frame[6:12]
        self.atten_char_number_of_sounds = frame[69]
        reply = compose_atten_char_rsp(self.mac, self.evse_mac)
        self._trace("[PEVSLAC] transmitting ATTEN_CHAR.RSP...")
        self.diagnostics.set_checkpoint(140)
        self.transmit(reply)
        self.slac_state = SlacState.ATTEN_CHAR_IND_RECEIVED

    def _on_slac_match_cnf(self, frame: bytes) -> None:
        self._trace("[PEVSLAC] received SLAC_MATCH.CNF")
        _require(frame, 93 + NMK_LEN, "SLAC_MATCH.CNF")
        self.nid = frame[85:85 + NID_LEN]
        self.nmk = frame[93:93 + NMK_LEN]
        self._trace("[PEVSLAC] From SlacMatchCnf, got network membership key (NMK) and NID.")
        request = compose_set_key(self.mac, self.nid, self.nmk)
        self._trace("[PEVSLAC] Checkpoint170: transmitting CM_SET_KEY.REQ")
        self.diagnostics.set_checkpoint(170)
        self.diagnostics.publish_status("SLAC", "set key")
        self.transmit(request)
        if self.slac_state == SlacState.WAITING_FOR_SLAC_MATCH_CNF:
            self._enter(SlacState.WAITING_FOR_RESTART2)

    def _on_set_key_cnf(self, frame: bytes) -> None:
        # A result of 1 means the modem restarts with the new key, which is the success case.
        self._trace("[PEVSLAC] received SET_KEY.CNF")
        _require(frame, 20, "SET_KEY.CNF")
        result = frame[19]
        if result == 0:
            self._trace(
                "[PEVSLAC] SetKeyCnf says 0, this would be a bad sign for local modem, "
                "but normal for remote."
            )
            return
        self._trace(
            f"[PEVSLAC] SetKeyCnf says {result}, this is formally 'rejected', but indeed ok."
        )
        self.diagnostics.publish_status("modem is", "restarting")
        self.connection.slac_ok()

    def _on_get_sw_cnf(self, frame: bytes) -> None:
        self._trace("[PEVSLAC] received GET_SW.CNF")
        _require(frame, 23, "GET_SW.CNF")
        self.number_of_software_version_responses = (
            self.number_of_software_version_responses + 1
        ) & 0xFF
        self.source_mac = frame[6:12]
        length = frame[22]
        if 0 < length < MAX_VERSION_LEN:
            _require(frame, 23 + length, "GET_SW.CNF version string")
            raw = bytes(max(x, 0x20) for x in frame[23:23 + length])
            self.software_version = raw.decode("latin-1")
            self._trace(f"software version {self.software_version}")