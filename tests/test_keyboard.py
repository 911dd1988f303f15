import pytest

from xv6fs.keyboard import CAPSLOCK, CTL, KEY_UP, SHIFT, KeyboardDecoder


def test_plain_letter():
    kbd = KeyboardDecoder()
    assert kbd.feed(0x1E) == ord("a")


def test_release_produces_nothing():
    kbd = KeyboardDecoder()
    assert kbd.feed(0x9E) == 0


def test_shift_held_and_released():
    kbd = KeyboardDecoder()
    assert kbd.feed(0x2A) == 0
    assert kbd.shift & SHIFT
    assert kbd.feed(0x1E) == ord("A")
    assert kbd.feed(0x02) == ord("!")
    assert kbd.feed(0xAA) == 0
    assert not kbd.shift & SHIFT
    assert kbd.feed(0x1E) == ord("a")


def test_capslock_toggles_and_inverts_with_shift():
    kbd = KeyboardDecoder()
    kbd.feed(0x3A)
    kbd.feed(0xBA)
    assert kbd.shift & CAPSLOCK
    assert kbd.feed(0x1E) == ord("A")
    kbd.feed(0x2A)
    assert kbd.feed(0x1E) == ord("a")
    kbd.feed(0xAA)
    kbd.feed(0x3A)
    assert not kbd.shift & CAPSLOCK
    assert kbd.feed(0x1E) == ord("a")


def test_control_letter():
    kbd = KeyboardDecoder()
    kbd.feed(0x1D)
    assert kbd.shift & CTL
    assert kbd.feed(0x10) == ord("Q") - ord("@")
    kbd.feed(0x9D)
    assert kbd.feed(0x10) == ord("q")


def test_escaped_arrow_key():
    kbd = KeyboardDecoder()
    assert kbd.feed(0xE0) == 0
    assert kbd.feed(0x48) == KEY_UP
    # Without the escape the same code is keypad 8.
    assert kbd.feed(0x48) == ord("8")


def test_escaped_right_control():
    kbd = KeyboardDecoder()
    assert kbd.feed(0xE0) == 0
    assert kbd.feed(0x1D) == 0
    assert kbd.shift & CTL
    assert kbd.feed(0x10) == ord("Q") - ord("@")
    assert kbd.feed(0xE0) == 0
    assert kbd.feed(0x9D) == 0
    assert not kbd.shift & CTL
    assert kbd.feed(0x10) == ord("q")


@pytest.mark.parametrize("code", [-1, 256])
def test_rejects_non_byte(code):
    with pytest.raises(ValueError):
        KeyboardDecoder().feed(code)