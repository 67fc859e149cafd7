"""Vehicle-side CCS charging link: SLAC, SDP over IPv6, link supervision and a charge-port model."""

__version__ = "0.1.0"

__all__ = [
    "connection",
    "diagnostics",
    "hardware",
    "homeplug",
    "homeplug_frames",
    "ipv6",
    "modem_finder",
    "pushbutton",
]