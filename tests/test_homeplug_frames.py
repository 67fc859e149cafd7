import pytest

from ccslink import homeplug_frames as hf

PEV_MAC = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x01])
EVSE_MAC = bytes([0x02, 0x00, 0x00, 0x00, 0x00, 0x02])
NID = bytes(range(1, 8))
NMK = bytes(range(16, 32))


def test_get_sw_req_wire_bytes():
    frame = hf.compose_get_sw_req(PEV_MAC)
    assert len(frame) == 60
    assert frame[0:6] == hf.MAC_BROADCAST
    assert frame[6:12] == PEV_MAC
    assert hf.get_ether_type(frame) == 0x88E1
    assert hf.get_mm_type(frame) == hf.CM_GET_SW + hf.MMTYPE_REQ
    assert frame[17:20] == b"\x00\xb0\x52"


@pytest.mark.parametrize(
    "frame, expected",
    [
        (hf.compose_slac_param_req(PEV_MAC), hf.CM_SLAC_PARAM + hf.MMTYPE_REQ),
        (hf.compose_start_atten_char_ind(PEV_MAC), hf.CM_START_ATTEN_CHAR + hf.MMTYPE_IND),
        (hf.compose_mnbc_sound_ind(PEV_MAC, 9), hf.CM_MNBC_SOUND + hf.MMTYPE_IND),
        (hf.compose_atten_char_rsp(PEV_MAC, EVSE_MAC), hf.CM_ATTEN_CHAR + hf.MMTYPE_RSP),
        (hf.compose_slac_match_req(PEV_MAC, EVSE_MAC), hf.CM_SLAC_MATCH + hf.MMTYPE_REQ),
        (hf.compose_set_key(PEV_MAC, NID, NMK), hf.CM_SET_KEY + hf.MMTYPE_REQ),
        (hf.compose_get_key(PEV_MAC, NID), hf.CM_GET_KEY + hf.MMTYPE_REQ),
    ],
)
def test_mm_types_and_ethertype(frame, expected):
    assert hf.get_mm_type(frame) == expected
    assert hf.get_ether_type(frame) == hf.ETHERTYPE_HOMEPLUG_AV
    assert frame[6:12] == PEV_MAC


def test_frame_lengths():
    assert len(hf.compose_slac_param_req(PEV_MAC)) == 60
    assert len(hf.compose_start_atten_char_ind(PEV_MAC)) == 60
    assert len(hf.compose_mnbc_sound_ind(PEV_MAC, 0)) == 71
    assert len(hf.compose_atten_char_rsp(PEV_MAC, EVSE_MAC)) == 70
    assert len(hf.compose_slac_match_req(PEV_MAC, EVSE_MAC)) == 85
    assert len(hf.compose_set_key(PEV_MAC, NID, NMK)) == 60
    assert len(hf.compose_get_key(PEV_MAC, NID)) == 60


def test_slac_param_req_run_id():
    frame = hf.compose_slac_param_req(PEV_MAC)
    assert frame[21:27] == PEV_MAC
    assert frame[27:29] == b"\x00\x00"
    assert frame[0:6] == hf.MAC_BROADCAST


def test_start_atten_char_ind_fields():
    frame = hf.compose_start_atten_char_ind(PEV_MAC)
    assert frame[21] == 0x0A
    assert frame[22] == 6
    assert frame[24:30] == PEV_MAC
    assert frame[30:36] == PEV_MAC


def test_mnbc_sound_ind_countdown_and_random():
    frame = hf.compose_mnbc_sound_ind(PEV_MAC, 7)
    assert frame[38] == 7
    assert frame[39:45] == PEV_MAC
    assert frame[55:71] == b"\xff" * 16
    assert frame[21:38] == bytes(17)


def test_mnbc_sound_ind_rejects_out_of_range():
    with pytest.raises(ValueError):
        hf.compose_mnbc_sound_ind(PEV_MAC, 256)
    with pytest.raises(ValueError):
        hf.compose_mnbc_sound_ind(PEV_MAC, -1)


def test_unicast_frames_go_to_evse():
    rsp = hf.compose_atten_char_rsp(PEV_MAC, EVSE_MAC)
    assert rsp[0:6] == EVSE_MAC
    assert rsp[21:27] == PEV_MAC
    assert rsp[27:33] == PEV_MAC
    match = hf.compose_slac_match_req(PEV_MAC, EVSE_MAC)
    assert match[0:6] == EVSE_MAC
    assert match[21] == 0x3E
    assert match[40:46] == PEV_MAC
    assert match[63:69] == EVSE_MAC
    assert match[69:75] == PEV_MAC


def test_set_key_carries_nid_and_nmk():
    frame = hf.compose_set_key(PEV_MAC, NID, NMK)
    assert frame[33:40] == NID
    assert frame[41:57] == NMK
    assert frame[40] == 0x01
    assert frame[20:24] == b"\xaa" * 4
    assert frame[28] == 0x04


def test_get_key_carries_nid():
    frame = hf.compose_get_key(PEV_MAC, NID)
    assert frame[21:28] == NID
    assert frame[28:32] == b"\xaa" * 4
    assert frame[32] == 0x04
    assert frame[20] == 0x01


def test_invalid_lengths_raise():
    with pytest.raises(ValueError):
        hf.compose_get_sw_req(b"\x01\x02")
    with pytest.raises(ValueError):
        hf.compose_atten_char_rsp(PEV_MAC, b"\x01")
    with pytest.raises(ValueError):
        hf.compose_set_key(PEV_MAC, NID[:6], NMK)
    with pytest.raises(ValueError):
        hf.compose_set_key(PEV_MAC, NID, NMK[:15])
    with pytest.raises(ValueError):
        hf.compose_get_key(PEV_MAC, NID + b"\x00")


def test_readers_reject_short_frames():
    with pytest.raises(ValueError):
        hf.get_ether_type(bytes(13))
    with pytest.raises(ValueError):
        hf.get_mm_type(bytes(16))


def test_mm_type_is_little_endian():
    frame = bytearray(hf.compose_get_sw_req(PEV_MAC))
    frame[15] = 0x01
    assert hf.get_mm_type(frame) == hf.CM_GET_SW + hf.MMTYPE_CNF