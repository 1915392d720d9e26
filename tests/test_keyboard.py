from xvfs.keyboard import CAPSLOCK, CTL, KEY_UP, SHIFT, Keyboard


def test_plain_letter():
    kbd = Keyboard()
    assert kbd.feed(0x1E) == ord("a")


def test_digits_row():
    kbd = Keyboard()
    assert [chr(kbd.feed(code)) for code in range(0x02, 0x0C)] == list("1234567890")


def test_shift_press_and_release():
    kbd = Keyboard()
    assert kbd.feed(0x2A) == 0
    assert kbd.shift & SHIFT
    assert kbd.feed(0x1E) == ord("A")
    assert kbd.feed(0x02) == ord("!")
    assert kbd.feed(0xAA) == 0
    assert not kbd.shift & SHIFT
    assert kbd.feed(0x1E) == ord("a")


def test_capslock_toggles():
    kbd = Keyboard()
    kbd.feed(0x3A)
    assert kbd.shift & CAPSLOCK
    assert kbd.feed(0x10) == ord("Q")
    kbd.feed(0x2A)
    assert kbd.feed(0x10) == ord("q")
    kbd.feed(0xAA)
    kbd.feed(0xBA)
    kbd.feed(0x3A)
    assert not kbd.shift & CAPSLOCK
    assert kbd.feed(0x10) == ord("q")


def test_control_map():
    kbd = Keyboard()
    kbd.feed(0x1D)
    assert kbd.shift & CTL
    assert kbd.feed(0x1E) == ord("A") - ord("@")
    assert kbd.feed(0x1C) == ord("\r")
    kbd.feed(0x9D)
    assert kbd.feed(0x1C) == ord("\n")


def test_escaped_arrow_key():
    kbd = Keyboard()
    assert kbd.feed(0xE0) == 0
    assert kbd.feed(0x48) == KEY_UP
    assert kbd.shift == 0


def test_escaped_release_keeps_high_bit():
    kbd = Keyboard()
    assert kbd.feed(0xE0) == 0
    assert kbd.feed(0x1D) == 0  # right control
    assert (kbd.shift & CTL) == CTL
    assert kbd.feed(0x1E) == ord("A") - ord("@")
    assert kbd.feed(0xE0) == 0
    assert kbd.feed(0x9D) == 0
    assert (kbd.shift & CTL) == 0
    assert kbd.feed(0x1E) == ord("a")


def test_unmapped_key_gives_zero():
    kbd = Keyboard()
    assert kbd.feed(0x3B) == 0