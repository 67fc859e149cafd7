# ccslink

`ccslink` models the vehicle (PEV) side of the low-level CCS charging link:
finding the local HomePlug modem, pairing with the charger's modem through
SLAC, discovering the charger's communication controller (SECC) with SDP over
IPv6, and supervising the link as a whole. It also models the charge-port
hardware a vehicle controller drives: control-pilot state, contactors,
connector lock, status LEDs and a push button.

Everything is driven by periodic calls, one step every 30 ms, the way an
embedded control loop would call it. No I/O is done by the package itself:
outgoing Ethernet frames are handed to a `transmit` callable you supply, and
received frames are passed in by you.

The package has no dependencies beyond the standard library.

## Installation

```
pip install ccslink
```

To run the test suite:

```
pip install "ccslink[test]"
pytest
```

## Modules

- `ccslink.diagnostics`
  - `LogModule` — flags (`CONNMGR`, `HWIF`, `HOMEPLUG`, `IPV6`, `MODEMFINDER`,
    `PEV`, `TCP`) selecting which parts trace.
  - `Diagnostics(logging=..., clock=None, stream=None, on_status=None)` —
    `trace(module, text, data=None)` writes `[<ms>] <text>` (plus `data` as hex)
    to `stream` (stdout by default) when `module` is enabled;
    `set_checkpoint(value)` stores `checkpoint`; `publish_status(line1, line2)`
    stores `status` and calls `on_status`; `now_ms()` returns milliseconds from
    `clock`, or since creation.
- `ccslink.connection`
  - `ConnectionLevel` — `NONE` 0, `ETH_LINK_PRESENT` 5, `ONE_MODEM_FOUND` 10,
    `SLAC_ONGOING` 15, `TWO_MODEMS_FOUND` 20, `SDP_DONE` 50, `TCP_RUNNING` 80,
    `APPL_RUNNING` 100.
  - `ConnectionManager` — layers report success with `modem_finder_ok(count)`,
    `slac_ok()`, `sdp_ok()`, `tcp_ok()` and `appl_ok(timeout_seconds)`. Each
    report rewinds a forget timer (5 s; 10 s for two modems, 20 s for SLAC,
    the given time for the application). `tick()` counts the timers down and
    sets `level` to the highest layer whose timer is still running. The
    Ethernet link is always considered present, so from the second tick the
    level is at least 5.
- `ccslink.pushbutton`
  - `PushButton` — `handle(analog_value)` takes one sample (below 1000 means
    pressed). `is_pressed_500ms()` is true for a press longer than half a
    second. A half-second pause closes a series of presses; after four series
    `accumulated_digits()` returns their counts as a four-digit number. Five
    seconds without pressing reset it to 0.
- `ccslink.hardware`
  - `LockState` — `UNKNOWN`, `OPEN`, `CLOSED`, `OPENING`, `CLOSING`.
  - `HardwareInterface(diagnostics=None, pushbutton=None, pwm_period=4096)` —
    parameters are plain attributes (`soc`, `battery_voltage`,
    `target_voltage`, `demo_voltage`, `charge_current`, `inlet_voltage`,
    `enable`, `can_watchdog`, `watchdog_disabled`, lock thresholds and timing,
    `economizer_percent`); outputs are attributes too (`state_c`, `leds`,
    `hbridge`, `contactor_pwm`, `lock_status`, `cp_duty`).
    `cyclic(cp_capture=None, lock_feedback=0)` runs one step: CP duty from a
    `(period, high_time)` capture, LED patterns from the diagnostics
    checkpoint, contactors at full PWM for two seconds and then at the
    economizer duty, and the connector lock either by position feedback or,
    when both thresholds are equal, by run time alone. Entering the button
    code 3411 starts an output self-test that steps through LEDs, lock bridge
    and contactors. `stop_charging()` is true on a long button press, when
    `enable` is off, or on a CAN watchdog timeout.
- `ccslink.homeplug_frames` — builders for the HomePlug AV management
  messages used in SLAC (`compose_get_sw_req`, `compose_slac_param_req`,
  `compose_start_atten_char_ind`, `compose_mnbc_sound_ind`,
  `compose_atten_char_rsp`, `compose_slac_match_req`, `compose_set_key`,
  `compose_get_key`) and field readers `get_ether_type` and `get_mm_type`.
  Addresses and keys of the wrong length raise `ValueError`.
- `ccslink.homeplug`
  - `SlacState` — the states of the SLAC sequence.
  - `Homeplug(connection, transmit=None, sdp_request=None, diagnostics=None, mac=...)`
    — `run_slac_sequencer()` runs SLAC while the level is at least 10 and
    below 20; `run_sdp_state_machine()` calls `sdp_request` up to 50 times,
    every half second, while the level is from 15 to 20;
    `evaluate_received_packet(frame)` handles SLAC_PARAM.CNF, ATTEN_CHAR.IND,
    SLAC_MATCH.CNF (takes NID and NMK, sends SET_KEY), SET_KEY.CNF and
    GET_SW.CNF (counts modems, stores `software_version`).
    `sanity_check()` raises `SanityCheckError` on an impossible state.
- `ccslink.modem_finder`
  - `ModemFinder(connection, homeplug)` — at level 5, `tick()` broadcasts
    GET_SW.REQ, waits about half a second and reports the number of answers to
    the connection manager.
- `ccslink.ipv6`
  - `pseudo_header_checksum(payload, source_ip, destination_ip, next_header)`
    — the Internet checksum over the IPv6 pseudo header and the packet.
  - `Ipv6Stack(connection, homeplug=None, transmit=None, tcp_handler=None, ...)`
    — `initiate_sdp_request()` sends and returns the SDP request frame;
    `evaluate_received_packet(frame)` takes the SECC address and port from an
    SDP response (and reports `sdp_ok`), passes TCP frames to `tcp_handler`,
    and answers neighbour solicitations with a neighbour advertisement.

## Example: wiring the link layers

```python
from ccslink.connection import ConnectionManager
from ccslink.homeplug import Homeplug
from ccslink.homeplug_frames import get_ether_type
from ccslink.ipv6 import Ipv6Stack
from ccslink.modem_finder import ModemFinder

sent = []
connection = ConnectionManager()
homeplug = Homeplug(
    connection,
    transmit=sent.append,
    sdp_request=lambda: ipv6.initiate_sdp_request(),
)
ipv6 = Ipv6Stack(connection, homeplug=homeplug, transmit=sent.append)
finder = ModemFinder(connection, homeplug)

def receive(frame: bytes) -> None:
    ether_type = get_ether_type(frame)
    if ether_type == 0x88E1:
        homeplug.evaluate_received_packet(frame)
    elif ether_type == 0x86DD:
        ipv6.evaluate_received_packet(frame)

def every_30ms() -> None:
    connection.tick()
    finder.tick()
    homeplug.run_slac_sequencer()
    homeplug.run_sdp_state_machine()
```

## Example: building a HomePlug frame

```python
from ccslink.homeplug_frames import compose_get_sw_req, get_ether_type, get_mm_type

mac = bytes.fromhex("020000000001")  # a made-up, locally administered address
frame = compose_get_sw_req(mac)

assert get_ether_type(frame) == 0x88E1  # HomePlug AV
assert get_mm_type(frame) == 0xA000     # GET_SW.REQ
```

## What the package does not do

- It has no TCP stack: TCP frames are only handed to `tcp_handler`, and
  `ConnectionManager.tcp_ok()` must be called by whatever handles them.
- It has no EXI/V2G message encoding and no charging-session state machine;
  `appl_ok()` is there for such a layer to report to.
- It talks to no real modem or hardware: frames go to your `transmit`
  callable, and the hardware model only sets attributes.
- It has no command-line program.