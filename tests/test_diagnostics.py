import io

import pytest

from ccslink.diagnostics import Diagnostics, LogModule


def make(logging=LogModule(0), now=42):
    stream = io.StringIO()
    diag = Diagnostics(logging=logging, clock=lambda: now, stream=stream)
    return diag, stream


def test_trace_disabled_module_writes_nothing():
    diag, stream = make(logging=LogModule.PEV)
    diag.trace(LogModule.HOMEPLUG, "hello")
    assert stream.getvalue() == ""


def test_trace_enabled_module_writes_timestamped_line():
    diag, stream = make(logging=LogModule.HOMEPLUG | LogModule.PEV)
    diag.trace(LogModule.HOMEPLUG, "hello")
    assert stream.getvalue() == "[42] hello\n"


def test_trace_with_data_appends_hex():
    diag, stream = make(logging=LogModule.PEV)
    diag.trace(LogModule.PEV, "session", bytes([0x0A, 0xFF, 0x00]))
    assert stream.getvalue() == "[42] session 0aff00\n"


def test_now_ms_uses_clock_and_wraps():
    diag, _ = make(now=(1 << 32) + 7)
    assert diag.now_ms() == 7


def test_default_clock_is_monotonic():
    diag = Diagnostics()
    first = diag.now_ms()
    second = diag.now_ms()
    assert second >= first


@pytest.mark.parametrize("value", [6, 100, 1100])
def test_set_checkpoint_stores_value(value):
    diag, _ = make()
    diag.set_checkpoint(value)
    assert diag.checkpoint == value


def test_publish_status_stores_and_notifies():
    seen = []
    diag = Diagnostics(on_status=lambda a, b: seen.append((a, b)))
    diag.publish_status("SDP finished")
    assert diag.status == ("SDP finished", "")
    assert seen == [("SDP finished", "")]