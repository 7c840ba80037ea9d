import pytest

from ringchan.utility import (
    ScopeGuard,
    error,
    guard,
    is_valid_string,
    log,
    make_align,
    make_prefix,
    make_string,
    static_switch,
    to_string,
)


def test_guard_runs_once_on_exit():
    calls = []
    with guard(lambda: calls.append(1)) as g:
        assert calls == []
    assert calls == [1]
    g.do_exit()
    assert calls == [1]


def test_guard_dismissed_does_not_run():
    calls = []
    with ScopeGuard(lambda: calls.append(1)) as g:
        g.dismiss()
    assert calls == []


def test_do_exit_runs_immediately():
    calls = []
    g = ScopeGuard(lambda: calls.append("x"))
    g.do_exit()
    g.do_exit()
    assert calls == ["x"]


def test_failing_destructor_is_swallowed_on_exit():
    def boom():
        raise RuntimeError("fail")

    with ScopeGuard(boom) as g:
        pass
    with pytest.raises(RuntimeError):
        ScopeGuard(boom).do_exit()
    assert g._dismissed is True


def test_body_exception_propagates_and_guard_runs():
    calls = []
    with pytest.raises(KeyError):
        with guard(lambda: calls.append(1)):
            raise KeyError("k")
    assert calls == [1]


@pytest.mark.parametrize("align", [1, 2, 8, 16, 64])
@pytest.mark.parametrize("size", [0, 1, 7, 8, 9, 63, 64, 100])
def test_make_align_invariants(align, size):
    result = make_align(align, size)
    assert result % align == 0
    assert result >= size
    assert result - size < align


def test_make_align_exact_multiple_unchanged():
    assert make_align(16, 32) == 32


def test_static_switch_hits_and_default():
    assert static_switch(4, 2, lambda i: ("hit", i), lambda: "default") == ("hit", 2)
    assert static_switch(4, 4, lambda i: ("hit", i), lambda: "default") == "default"
    assert static_switch(0, 0, lambda i: ("hit", i), lambda: "default") == "default"


def test_is_valid_string():
    assert is_valid_string("name")
    assert not is_valid_string("")
    assert not is_valid_string(None)
    assert not is_valid_string("\0abc")


def test_make_string():
    assert make_string("abc") == "abc"
    assert make_string(None) == ""
    assert make_string("") == ""


def test_make_prefix_skips_empty():
    assert make_prefix("p", ["a", "", "b"]) == "p__IPC_SHM__ab"
    assert make_prefix("", []) == "__IPC_SHM__"


@pytest.mark.parametrize("value", [0, 42, -17, 123456789012])
def test_to_string_int_round_trip(value):
    assert int(to_string(value)) == value


def test_to_string_float_round_trip():
    assert float(to_string(1.5)) == 1.5


def test_to_string_rejects_other_types():
    with pytest.raises(TypeError):
        to_string("x")


def test_log_writes_stdout(capsys):
    log("plain text")
    log("%s-%d", "abc", 5)
    out = capsys.readouterr().out
    assert out.startswith("plain text")
    assert out.endswith("abc-5")


def test_error_writes_stderr(capsys):
    error("failure %s", "here")
    captured = capsys.readouterr()
    assert captured.err == "failure here"
    assert captured.out == ""