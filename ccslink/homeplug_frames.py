"""Builders and field readers for HomePlug AV management frames used during SLAC."""

from __future__ import annotations

from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]

ETHERTYPE_HOMEPLUG_AV = 0x88E1
MAC_BROADCAST = b"\xff" * 6

# Management message base types (HomePlug AV spec, table 11-2)
CM_SET_KEY = 0x6008
CM_GET_KEY = 0x600C
CM_SC_JOIN = 0x6010
CM_CHAN_EST = 0x6014
CM_TM_UPDATE = 0x6018
CM_AMP_MAP = 0x601C
CM_BRG_INFO = 0x6020
CM_CONN_NEW = 0x6024
CM_CONN_REL = 0x6028
CM_CONN_MOD = 0x602C
CM_CONN_INFO = 0x6030
CM_STA_CAP = 0x6034
CM_NW_INFO = 0x6038
CM_GET_BEACON = 0x603C
CM_HFID = 0x6040
CM_MME_ERROR = 0x6044
CM_NW_STATS = 0x6048
CM_SLAC_PARAM = 0x6064
CM_START_ATTEN_CHAR = 0x6068
CM_ATTEN_CHAR = 0x606C
CM_PKCS_CERT = 0x6070
CM_MNBC_SOUND = 0x6074
CM_VALIDATE = 0x6078
CM_SLAC_MATCH = 0x607C
CM_SLAC_USER_DATA = 0x6080
CM_ATTEN_PROFILE = 0x6084
CM_GET_SW = 0xA000

# Lower two bits of the management message type
MMTYPE_REQ = 0x0000
MMTYPE_CNF = 0x0001
MMTYPE_IND = 0x0002
MMTYPE_RSP = 0x0003

MAC_LEN = 6
NID_LEN = 7
NMK_LEN = 16


def _check_length(name: str, value: BytesLike, length: int) -> bytes:
    data = bytes(value)
    if len(data) != length:
        raise ValueError(f"{name} must be {length} bytes, got {len(data)}")
    return data


def _new_frame(length: int, destination: BytesLike, source: BytesLike) -> bytearray:
    """A zeroed frame with Ethernet addresses and the HomePlug AV EtherType."""
    frame = bytearray(length)
    frame[0:6] = _check_length("destination MAC", destination, MAC_LEN)
    frame[6:12] = _check_length("source MAC", source, MAC_LEN)
    frame[12] = ETHERTYPE_HOMEPLUG_AV >> 8
    frame[13] = ETHERTYPE_HOMEPLUG_AV & 0xFF
    return frame


def get_ether_type(frame: BytesLike) -> int:
    """The EtherType at bytes 12 and 13 of an Ethernet frame."""
    data = bytes(frame)
    if len(data) < 14:
        raise ValueError("frame too short for an Ethernet header")
    return (data[12] << 8) | data[13]


def get_mm_type(frame: BytesLike) -> int:
    """The management message type (little endian at bytes 15 and 16)."""
    data = bytes(frame)
    if len(data) < 17:
        raise ValueError("frame too short for a management message header")
    return (data[16] << 8) | data[15]


def compose_get_sw_req(mac: BytesLike) -> bytes:
    """GET_SW.REQ broadcast, asking all modems for their software version."""
    frame = _new_frame(60, MAC_BROADCAST, mac)
    frame[14] = 0x00  # version
    frame[15] = 0x00  # GET_SW.REQ
    frame[16] = 0xA0
    frame[17:20] = b"\x00\xb0\x52"  # vendor OUI
    return bytes(frame)


def compose_slac_param_req(mac: BytesLike) -> bytes:
    """SLAC_PARAM.REQ broadcast; the run id is the PEV MAC followed by two zeros."""
    frame = _new_frame(60, MAC_BROADCAST, mac)
    frame[14] = 0x01
    frame[15] = 0x64
    frame[16] = 0x60
    frame[21:27] = bytes(mac)
    return bytes(frame)


def compose_start_atten_char_ind(mac: BytesLike) -> bytes:
    """START_ATTEN_CHAR.IND announcing ten sounds within 600 ms."""
    frame = _new_frame(60, MAC_BROADCAST, mac)
    frame[14] = 0x01
    frame[15] = 0x6A
    frame[16] = 0x60
    frame[21] = 0x0A  # number of sounds
    frame[22] = 6  # timeout in 100 ms steps
    frame[23] = 0x01  # response type
    frame[24:30] = bytes(mac)  # sound forwarding station
    frame[30:36] = bytes(mac)  # run id
    return bytes(frame)


def compose_mnbc_sound_ind(mac: BytesLike, remaining_sounds: int) -> bytes:
    """MNBC_SOUND.IND carrying the countdown of remaining sounds."""
    if not 0 <= remaining_sounds <= 0xFF:
        raise ValueError("remaining_sounds must fit into one byte")
    frame = _new_frame(71, MAC_BROADCAST, mac)
    frame[14] = 0x01
    frame[15] = 0x76
    frame[16] = 0x60
    frame[38] = remaining_sounds
    frame[39:45] = bytes(mac)  # run id
    frame[55:71] = b"\xff" * 16  # random value
    return bytes(frame)


def compose_atten_char_rsp(mac: BytesLike, evse_mac: BytesLike) -> bytes:
    """ATTEN_CHAR.RSP to the charger, with result 0 (ok)."""
    frame = _new_frame(70, evse_mac, mac)
    frame[14] = 0x01
    frame[15] = 0x6F
    frame[16] = 0x60
    frame[21:27] = bytes(mac)  # source address
    frame[27:33] = bytes(mac)  # run id
    return bytes(frame)


def compose_slac_match_req(mac: BytesLike, evse_mac: BytesLike) -> bytes:
    """SLAC_MATCH.REQ to the chosen charger."""
    frame = _new_frame(85, evse_mac, mac)
    frame[14] = 0x01
    frame[15] = 0x7C
    frame[16] = 0x60
    frame[21] = 0x3E  # length, little endian
    frame[22] = 0x00
    frame[40:46] = bytes(mac)  # PEV MAC
    frame[63:69] = bytes(evse_mac)  # EVSE MAC
    frame[69:75] = bytes(mac)  # run id
    return bytes(frame)


def compose_set_key(mac: BytesLike, nid: BytesLike, nmk: BytesLike) -> bytes:
    """CM_SET_KEY.REQ installing the network membership key in the local modem."""
    nid_bytes = _check_length("NID", nid, NID_LEN)
    nmk_bytes = _check_length("NMK", nmk, NMK_LEN)
    frame = _new_frame(60, MAC_BROADCAST, mac)
    frame[14] = 0x01
    frame[15] = 0x08
    frame[16] = 0x60
    frame[19] = 0x01  # key info type
    frame[20:24] = b"\xaa" * 4  # my nonce
    frame[28] = 0x04  # protocol id
    frame[33:40] = nid_bytes
    frame[40] = 0x01  # payload encryption key select: NMK
    frame[41:57] = nmk_bytes
    return bytes(frame)


def compose_get_key(mac: BytesLike, nid: BytesLike) -> bytes:
    """CM_GET_KEY.REQ, used to check whether the pairing worked."""
    nid_bytes = _check_length("NID", nid, NID_LEN)
    frame = _new_frame(60, MAC_BROADCAST, mac)
    frame[14] = 0x01
    frame[15] = 0x0C
    frame[16] = 0x60
    frame[19] = 0x00  # request type: direct
    frame[20] = 0x01  # requested key type: NMK
    frame[21:28] = nid_bytes
    frame[28:32] = b"\xaa" * 4  # my nonce
    frame[32] = 0x04  # protocol id
    return bytes(frame)