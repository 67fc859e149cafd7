import pytest

from ccslink.connection import ConnectionLevel, ConnectionManager
from ccslink.homeplug import Homeplug
from ccslink.ipv6 import (
    BROADCAST_IPV6,
    DEFAULT_EVCC_IP,
    Ipv6Stack,
    pseudo_header_checksum,
)

CHARGER_MAC = bytes.fromhex("020000000001")
CHARGER_IP = bytes.fromhex("fe800000000000000000000000000042")
SECC_IP = bytes.fromhex("fe800000000000000000000000000099")


def make_frame(next_header, body, src_mac=CHARGER_MAC, src_ip=CHARGER_IP):
    frame = bytearray(54)
    frame[0:6] = bytes.fromhex("feedbeefaffe")
    frame[6:12] = src_mac
    frame[12:14] = b"\x86\xdd"
    frame[14] = 0x60
    frame[18:20] = len(body).to_bytes(2, "big")
    frame[20] = next_header
    frame[22:38] = src_ip
    frame[38:54] = DEFAULT_EVCC_IP
    return bytes(frame) + bytes(body)


def make_udp(src_port, dst_port, payload, length=None):
    udp_len = 8 + len(payload) if length is None else length
    header = src_port.to_bytes(2, "big") + dst_port.to_bytes(2, "big")
    header += udp_len.to_bytes(2, "big") + b"\x00\x00"
    return make_frame(0x11, header + payload)


def sdp_response(payload_type=0x9001, length=20, port=15118):
    return (
        b"\x01\xfe"
        + payload_type.to_bytes(2, "big")
        + length.to_bytes(4, "big")
        + SECC_IP
        + port.to_bytes(2, "big")
        + b"\x10\x00"
    )


def make_stack(**kwargs):
    sent = []
    connection = ConnectionManager()
    stack = Ipv6Stack(connection, transmit=sent.append, **kwargs)
    return stack, connection, sent


def test_checksum_of_empty_packet():
    assert pseudo_header_checksum(b"", bytes(16), bytes(16), 0) == 0xFFFF


def test_checksum_verifies_to_zero():
    payload = bytearray(b"\x12\x34\x3a\x98\x00\x0b\x00\x00abc")
    csum = pseudo_header_checksum(payload, DEFAULT_EVCC_IP, BROADCAST_IPV6, 0x11)
    payload[6:8] = csum.to_bytes(2, "big")
    assert pseudo_header_checksum(payload, DEFAULT_EVCC_IP, BROADCAST_IPV6, 0x11) == 0


def test_checksum_rejects_bad_address_length():
    with pytest.raises(ValueError):
        pseudo_header_checksum(b"", bytes(4), bytes(16), 0x11)


def test_sdp_request_frame_layout():
    stack, _, sent = make_stack()
    frame = stack.initiate_sdp_request()
    assert sent == [frame]
    assert len(frame) == 14 + 40 + 18
    assert frame[0:6] == bytes.fromhex("333300000001")
    assert frame[6:12] == stack.mac
    assert frame[12:14] == b"\x86\xdd"
    assert frame[20] == 0x11
    assert frame[21] == 0x0A
    assert frame[22:38] == DEFAULT_EVCC_IP
    assert frame[38:54] == BROADCAST_IPV6
    assert int.from_bytes(frame[54:56], "big") == 59219
    assert int.from_bytes(frame[56:58], "big") == 15118
    assert int.from_bytes(frame[58:60], "big") == 18
    assert frame[62:72] == bytes.fromhex("01fe9000000000021000")


def test_sdp_request_checksum_is_valid():
    stack, _, _ = make_stack()
    frame = stack.initiate_sdp_request()
    udp = frame[54:]
    assert pseudo_header_checksum(udp, DEFAULT_EVCC_IP, BROADCAST_IPV6, 0x11) == 0


def test_sdp_response_is_evaluated():
    stack, connection, _ = make_stack()
    stack.evaluate_received_packet(make_udp(15118, 59219, sdp_response(port=15200)))
    assert stack.secc_ip == SECC_IP
    assert stack.secc_tcp_port == 15200
    assert stack.evse_mac == CHARGER_MAC
    assert stack.diagnostics.checkpoint == 203
    assert connection.tick() == ConnectionLevel.SDP_DONE


def test_known_evse_mac_is_kept_in_homeplug():
    connection = ConnectionManager()
    homeplug = Homeplug(connection)
    known = bytes.fromhex("0a0b0c0d0e0f")
    homeplug.evse_mac = known
    stack = Ipv6Stack(connection, homeplug=homeplug)
    stack.evaluate_received_packet(make_udp(15118, 59219, sdp_response()))
    assert homeplug.evse_mac == known
    assert stack.secc_ip == SECC_IP


def test_sdp_response_with_wrong_length_is_ignored():
    stack, connection, _ = make_stack()
    stack.evaluate_received_packet(make_udp(15118, 59219, sdp_response(length=19)))
    assert stack.secc_ip == bytes(16)
    assert connection.tick() == ConnectionLevel.NONE


def test_unsupported_payload_type_is_ignored():
    stack, connection, _ = make_stack()
    stack.evaluate_received_packet(make_udp(15118, 59219, sdp_response(payload_type=0x8001)))
    assert stack.secc_tcp_port == 0
    assert connection.tick() == ConnectionLevel.NONE


def test_other_ports_are_ignored():
    stack, _, _ = make_stack()
    stack.evaluate_received_packet(make_udp(1000, 2000, sdp_response()))
    assert stack.secc_ip == bytes(16)
    assert stack.source_port == 1000
    assert stack.destination_port == 2000


def test_too_long_udp_is_ignored():
    stack, _, _ = make_stack()
    stack.evaluate_received_packet(make_udp(15118, 59219, sdp_response(), length=101))
    assert stack.udp_length == 101
    assert stack.secc_ip == bytes(16)


def test_short_frame_is_ignored():
    stack, _, sent = make_stack()
    frame = make_udp(15118, 59219, b"")[:60]
    stack.evaluate_received_packet(frame)
    assert stack.source_ip == bytes(16)
    assert sent == []


def test_tcp_frames_go_to_handler():
    received = []
    stack, _, _ = make_stack(tcp_handler=received.append)
    frame = make_frame(0x06, bytes(30))
    stack.evaluate_received_packet(frame)
    assert received == [frame]
    assert stack.source_ip == CHARGER_IP


def test_neighbor_solicitation_is_answered():
    stack, _, sent = make_stack()
    body = bytes([0x87, 0, 0, 0, 0, 0, 0, 0]) + DEFAULT_EVCC_IP
    stack.evaluate_received_packet(make_frame(0x3A, body))
    assert len(sent) == 1
    reply = sent[0]
    assert len(reply) == 86
    assert reply[0:6] == CHARGER_MAC
    assert reply[6:12] == stack.mac
    assert reply[20] == 0x3A
    assert reply[38:54] == CHARGER_IP
    assert reply[54] == 0x88
    assert reply[58] == 0x60
    assert reply[62:78] == DEFAULT_EVCC_IP
    assert reply[80:86] == stack.mac
    assert pseudo_header_checksum(reply[54:86], DEFAULT_EVCC_IP, CHARGER_IP, 0x3A) == 0
    assert stack.neighbors_mac == CHARGER_MAC


def test_other_icmp_types_get_no_answer():
    stack, _, sent = make_stack()
    stack.evaluate_received_packet(make_frame(0x3A, bytes([0x80]) + bytes(23)))
    assert sent == []


def test_invalid_mac_rejected():
    with pytest.raises(ValueError):
        Ipv6Stack(ConnectionManager(), mac=b"\x01\x02")