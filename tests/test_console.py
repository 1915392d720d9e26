import pytest

from xvfs.console import BACKSPACE, INPUT_BUF, Console, Screen, kprintf


def test_kprintf_conversions():
    assert kprintf("%d %x %s", -5, 255, "ok") == "-5 ff ok"


def test_kprintf_pointer_is_unsigned():
    assert kprintf("%p", -1) == "ffffffff"


def test_kprintf_null_string_and_percent():
    assert kprintf("%s 100%%", None) == "(null) 100%"


def test_kprintf_unknown_sequence_is_echoed():
    assert kprintf("%c%q", 65) == "%c%q"


def test_kprintf_trailing_percent_dropped():
    assert kprintf("abc%") == "abc"


def test_kprintf_null_fmt():
    with pytest.raises(ValueError):
        kprintf(None)


def test_kprintf_missing_argument():
    with pytest.raises(TypeError):
        kprintf("%d")


def test_screen_put_character():
    screen = Screen()
    screen.put(ord("A"))
    assert screen.cells[0] & 0xFF == ord("A")
    assert screen.pos == 1
    assert screen.cells[1] & 0xFF == ord(" ")


def test_screen_newline_and_backspace():
    screen = Screen()
    screen.put(BACKSPACE)
    assert screen.pos == 0
    screen.put(ord("x"))
    screen.put(ord("\n"))
    assert screen.pos == 80
    screen.put(BACKSPACE)
    assert screen.pos == 79


def test_screen_scrolls():
    screen = Screen()
    screen.put(ord("X"))
    screen.put(ord("\n"))
    screen.put(ord("Y"))
    for _ in range(23):
        screen.put(ord("\n"))
    assert screen.pos == 23 * 80
    assert screen.cells[0] & 0xFF == ord("Y")


def test_read_line():
    con = Console()
    con.interrupt("hi\n")
    assert con.read(10) == b"hi\n"
    assert bytes(con.serial) == b"hi\n"


def test_read_partial_line():
    con = Console()
    con.interrupt("hello\n")
    assert con.read(2) == b"he"
    assert con.read(10) == b"llo\n"


def test_carriage_return_becomes_newline():
    con = Console()
    con.interrupt(b"ab\r")
    assert con.read(10) == b"ab\n"


def test_backspace_edits_line():
    con = Console()
    con.interrupt("ab\x7fc\n")
    assert con.read(10) == b"ac\n"
    assert b"\b \b" in bytes(con.serial)


def test_kill_line():
    con = Console()
    con.interrupt("abc\x15d\n")
    assert con.read(10) == b"d\n"


def test_control_d_is_end_of_input():
    con = Console()
    con.interrupt("ab\x04")
    assert con.read(10) == b"ab"
    assert con.read(10) == b""


def test_full_buffer_is_committed():
    con = Console()
    con.interrupt("a" * (INPUT_BUF + 5))
    assert con.read(INPUT_BUF) == b"a" * INPUT_BUF


def test_killed_reader_is_interrupted():
    con = Console()
    con.killed = True
    with pytest.raises(InterruptedError):
        con.read(5)


def test_procdump_called():
    calls = []
    con = Console(procdump=lambda: calls.append(1))
    con.interrupt([ord("P") - ord("@")])
    assert calls == [1]


def test_write_goes_to_serial_and_screen():
    con = Console()
    assert con.write(b"ok") == 2
    assert bytes(con.serial) == b"ok"
    assert [cell & 0xFF for cell in con.screen.cells[:2]] == [ord("o"), ord("k")]