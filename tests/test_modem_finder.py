from ccslink.connection import ConnectionLevel, ConnectionManager
from ccslink.homeplug import DEFAULT_MAC, Homeplug
from ccslink.homeplug_frames import compose_get_sw_req
from ccslink.modem_finder import ModemFinder


def _get_sw_cnf():
    frame = bytearray(60)
    frame[6:12] = bytes.fromhex("020000000002")
    frame[15] = 0x01
    frame[16] = 0xA0
    return frame


def _setup():
    conn = ConnectionManager()
    conn.tick()
    conn.tick()
    sent = []
    hp = Homeplug(conn, transmit=sent.append)
    return conn, hp, ModemFinder(conn, hp), sent


def test_search_starts_at_eth_level():
    conn, hp, mf, sent = _setup()
    assert conn.level == ConnectionLevel.ETH_LINK_PRESENT
    mf.tick()
    assert sent == [compose_get_sw_req(DEFAULT_MAC)]
    assert mf.state == 1
    assert mf.diagnostics.checkpoint == 6
    assert mf.diagnostics.status == ("Modem search", "")


def test_counts_modems_and_reports():
    conn, hp, mf, sent = _setup()
    mf.tick()
    hp.evaluate_received_packet(_get_sw_cnf())
    hp.evaluate_received_packet(_get_sw_cnf())
    for _ in range(15):
        mf.tick()
    assert mf.state == 1
    mf.tick()
    assert mf.state == 2
    assert mf.diagnostics.status == ("Modems:", "2")
    assert conn.tick() == ConnectionLevel.TWO_MODEMS_FOUND


def test_no_modems_restarts_search():
    conn, hp, mf, sent = _setup()
    mf.tick()
    for _ in range(16):
        mf.tick()
    assert mf.diagnostics.status == ("Modems:", "0")
    for _ in range(16):
        mf.tick()
    assert mf.state == 0
    mf.tick()
    assert len(sent) == 2
    assert mf.state == 1


def test_no_search_without_link():
    conn = ConnectionManager()
    sent = []
    hp = Homeplug(conn, transmit=sent.append)
    mf = ModemFinder(conn, hp)
    mf.tick()
    assert sent == []
    assert mf.state == 0