"""IPv6 handling for the car: SECC discovery over UDP and neighbour advertisements."""

from __future__ import annotations

from typing import Callable, Optional

from ccslink.connection import ConnectionManager
from ccslink.diagnostics import Diagnostics, LogModule
from ccslink.homeplug import DEFAULT_MAC, Homeplug
from ccslink.homeplug_frames import BytesLike, MAC_LEN

IP_LEN = 16
NEXT_TCP = 0x06
NEXT_UDP = 0x11
NEXT_ICMPV6 = 0x3A
ICMPV6_NEIGHBOR_SOLICITATION = 0x87
ICMPV6_NEIGHBOR_ADVERTISEMENT = 0x88
ICMP_ADVERTISEMENT_LEN = 32
ETHERTYPE_IPV6 = 0x86DD

V2G_UDP_PORT = 15118
V2GTP_SDP_REQUEST = 0x9000
V2GTP_SDP_RESPONSE = 0x9001
SDP_RESPONSE_LEN = 20
UDP_PAYLOAD_MAX = 100
MIN_EVALUATED_FRAME_LEN = 60
DEFAULT_EVCC_PORT = 59219

BROADCAST_IPV6 = bytes.fromhex("ff020000000000000000000000000001")
DEFAULT_EVCC_IP = bytes.fromhex("fe80000000000000c69083f3fbcb981e")
IPV6_MULTICAST_MAC = bytes.fromhex("333300000001")

Transmit = Callable[[bytes], None]
FrameHandler = Callable[[bytes], None]


def _check_length(name: str, value: BytesLike, length: int) -> bytes:
    data = bytes(value)
    if len(data) != length:
        raise ValueError(f"{name} must be {length} bytes, got {len(data)}")
    return data


def pseudo_header_checksum(
    payload: BytesLike,
    source_ip: BytesLike,
    destination_ip: BytesLike,
    next_header: int,
) -> int:
    """Internet checksum of an upper-layer packet including the IPv6 pseudo header.

    ``payload`` is the complete UDP, TCP or ICMPv6 packet with its checksum
    field set to zero. Run over a packet with the checksum filled in, the
    result is zero.
    """
    body = bytes(payload)
    header = (
        _check_length("source_ip", source_ip, IP_LEN)
        + _check_length("destination_ip", destination_ip, IP_LEN)
        + len(body).to_bytes(4, "big")
        + bytes(3)
        + bytes([next_header & 0xFF])
    )
    data = header + body
    if len(data) % 2:
        data += b"\x00"
    total = sum(int.from_bytes(data[i:i + 2], "big") for i in range(0, len(data), 2))
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


class Ipv6Stack:
    """Evaluates received IPv6 frames and sends the SECC discovery request.

    ``transmit`` sends a complete Ethernet frame. ``tcp_handler`` receives
    every TCP frame. The charger's MAC is shared with ``homeplug`` when given,
    because SLAC normally finds it first.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        homeplug: Optional[Homeplug] = None,
        transmit: Optional[Transmit] = None,
        tcp_handler: Optional[FrameHandler] = None,
        diagnostics: Optional[Diagnostics] = None,
        mac: BytesLike = DEFAULT_MAC,
        evcc_ip: BytesLike = DEFAULT_EVCC_IP,
        evcc_port: int = DEFAULT_EVCC_PORT,
    ) -> None:
        self.connection = connection
        self.homeplug = homeplug
        self.diagnostics = diagnostics if diagnostics is not None else connection.diagnostics
        self.transmit: Transmit = transmit if transmit is not None else (lambda frame: None)
        self.tcp_handler: FrameHandler = (
            tcp_handler if tcp_handler is not None else (lambda frame: None)
        )
        self.mac = _check_length("mac", mac, MAC_LEN)
        self.evcc_ip = _check_length("evcc_ip", evcc_ip, IP_LEN)
        self.evcc_port = evcc_port & 0xFFFF

        self.secc_ip = bytes(IP_LEN)
        self.secc_tcp_port = 0
        self.source_ip = bytes(IP_LEN)
        self.source_port = 0
        self.destination_port = 0
        self.udp_length = 0
        self.udp_checksum = 0
        self.neighbors_ip = bytes(IP_LEN)
        self.neighbors_mac = bytes(MAC_LEN)
        self._evse_mac = bytes(MAC_LEN)

    @property
    def evse_mac(self) -> bytes:
        """MAC of the charger's modem."""
        if self.homeplug is not None:
            return self.homeplug.evse_mac
        return self._evse_mac

    @evse_mac.setter
    def evse_mac(self, value: BytesLike) -> None:
        mac = _check_length("evse_mac", value, MAC_LEN)
        if self.homeplug is not None:
            self.homeplug.evse_mac = mac
        else:
            self._evse_mac = mac

    def _trace(self, text: str) -> None:
        self.diagnostics.trace(LogModule.IPV6, text)

    # --- reception ------------------------------------------------------

    def evaluate_received_packet(self, frame: BytesLike) -> None:
        """Handle a received Ethernet frame carrying IPv6."""
        data = bytes(frame)
        if len(data) <= MIN_EVALUATED_FRAME_LEN:
            return
        self.source_ip = data[22:38]
        next_header = data[20]
        if next_header == NEXT_UDP:
            self._trace("Its a UDP.")
            self._evaluate_udp(data)
        elif next_header == NEXT_TCP:
            self._trace("TCP received")
            self.tcp_handler(data)
        elif next_header == NEXT_ICMPV6:
            self._trace("ICMPv6 received")
            if data[54] == ICMPV6_NEIGHBOR_SOLICITATION:
                self._answer_neighbor_solicitation(data)

    def _evaluate_udp(self, frame: bytes) -> None:
        if len(frame) < 62:
            raise ValueError("frame too short for a UDP header")
        self.source_port = int.from_bytes(frame[54:56], "big")
        self.destination_port = int.from_bytes(frame[56:58], "big")
        self.udp_length = int.from_bytes(frame[58:60], "big")
        self.udp_checksum = int.from_bytes(frame[60:62], "big")
        # The UDP length includes the 8 byte header.
        if self.udp_length > UDP_PAYLOAD_MAX:
            self._trace("Ignoring too long UDP")
            return
        if self.udp_length > 8:
            payload = frame[62:62 + self.udp_length - 8]
            if len(payload) != self.udp_length - 8:
                raise ValueError("frame shorter than its UDP length")
            self._evaluate_udp_payload(payload, frame)

    def _evaluate_udp_payload(self, payload: bytes, frame: bytes) -> None:
        if V2G_UDP_PORT not in (self.destination_port, self.source_port):
            return
        if len(payload) < 4 or payload[0] != 0x01 or payload[1] != 0xFE:
            return
        payload_type = int.from_bytes(payload[2:4], "big")
        if payload_type != V2GTP_SDP_RESPONSE:
            self._trace(f"v2gptPayloadType {payload_type:x} not supported")
            return
        if len(payload) < 8:
            return
        if int.from_bytes(payload[4:8], "big") != SDP_RESPONSE_LEN:
            return
        if len(payload) < 8 + SDP_RESPONSE_LEN:
            raise ValueError("SDP response shorter than announced")
        self._trace("[SDP] Checkpoint203: Received SDP response")
        self.diagnostics.set_checkpoint(203)
        self.secc_ip = payload[8:24]
        self.secc_tcp_port = int.from_bytes(payload[24:26], "big")
        # Without SLAC the charger's MAC is still unknown; take it from this frame.
        current = self.evse_mac
        if current[0] == 0 and current[1] == 0:
            self._trace("[SDP] Taking evseMac from SDP response because not yet known.")
            self.evse_mac = frame[6:12]
        self.diagnostics.publish_status("SDP finished", "")
        self._trace("[SDP] Now we know the chargers IP.")
        self.connection.sdp_ok()

    def _answer_neighbor_solicitation(self, frame: bytes) -> None:
        # Only the SDP determines the charger's address; any neighbour gets an answer.
        self.neighbors_ip = frame[22:38]
        self.neighbors_mac = frame[6:12]

        reply = bytearray(86)
        reply[0:6] = self.neighbors_mac
        reply[6:12] = self.mac
        reply[12:14] = ETHERTYPE_IPV6.to_bytes(2, "big")
        reply[14] = 0x60  # traffic class, flow
        reply[18:20] = ICMP_ADVERTISEMENT_LEN.to_bytes(2, "big")
        reply[20] = NEXT_ICMPV6
        reply[21] = 0xFF  # hop limit
        reply[22:38] = self.evcc_ip
        reply[38:54] = self.neighbors_ip
        reply[54] = ICMPV6_NEIGHBOR_ADVERTISEMENT
        reply[58] = 0x60  # solicited, override
        reply[62:78] = self.evcc_ip
        reply[78] = 2  # option: target link-layer address
        reply[79] = 1  # option length in units of 8 bytes
        reply[80:86] = self.mac
        checksum = pseudo_header_checksum(
            reply[54:86], self.evcc_ip, self.neighbors_ip, NEXT_ICMPV6
        )
        reply[56:58] = checksum.to_bytes(2, "big")
        self._trace("transmitting Neighbor Advertisement")
        self.transmit(bytes(reply))

    # --- SECC discovery -------------------------------------------------

    def initiate_sdp_request(self) -> bytes:
        """Broadcast a SECC discovery request and return the transmitted frame."""
        self._trace("[SDP] initiating SDP request")
        v2gtp = (
            b"\x01\xfe"
            + V2GTP_SDP_REQUEST.to_bytes(2, "big")
            + (2).to_bytes(4, "big")
            + b"\x10\x00"  # security: none, transport: TCP
        )
        udp = bytearray(8 + len(v2gtp))
        udp[0:2] = self.evcc_port.to_bytes(2, "big")
        udp[2:4] = V2G_UDP_PORT.to_bytes(2, "big")
        udp[4:6] = len(udp).to_bytes(2, "big")
        udp[8:] = v2gtp
        checksum = pseudo_header_checksum(udp, self.evcc_ip, BROADCAST_IPV6, NEXT_UDP)
        udp[6:8] = checksum.to_bytes(2, "big")

        ip = (
            b"\x60\x00\x00\x00"
            + len(udp).to_bytes(2, "big")
            + bytes([NEXT_UDP, 0x0A])
            + self.evcc_ip
            + BROADCAST_IPV6
            + bytes(udp)
        )
        frame = IPV6_MULTICAST_MAC + self.mac + ETHERTYPE_IPV6.to_bytes(2, "big") + ip
        self.transmit(frame)
        return frame