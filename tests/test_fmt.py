import pytest

from xv6kit.fmt import format_int, kernel_format, user_format
from xv6kit.layout import KernelPanic


@pytest.mark.parametrize("value", [0, 1, 9, 10, 255, 4096, 123456789, 2**31 - 1])
@pytest.mark.parametrize("base", [10, 16])
def test_format_int_round_trip(value, base):
    assert int(format_int(value, base, False, False), base) == value
    assert int(format_int(value, base, True, True), base) == value


@pytest.mark.parametrize("value", [-1, -42, -100000])
def test_format_int_negative_signed(value):
    assert format_int(value, 10, True, False) == str(value)


def test_format_int_unsigned_wraps_32_bits():
    text = format_int(-1, 16, False, True)
    assert int(text, 16) == 0xFFFFFFFF
    assert text == text.upper()


def test_format_int_int_min():
    assert format_int(-(2**31), 10, True, False) == str(-(2**31))


def test_format_int_bad_base():
    with pytest.raises(ValueError):
        format_int(5, 1, True, False)


def test_user_format_basic():
    assert user_format("%d %s!", 42, "ok") == "42 ok!"


def test_user_format_hex_uppercase_matches_kernel():
    assert user_format("%x", 48879) == kernel_format("%x", 48879).upper()
    assert user_format("%p", 48879) == user_format("%x", 48879)


def test_user_format_null_string():
    assert user_format("[%s]", None) == "[(null)]"
    assert kernel_format("[%s]", None) == "[(null)]"


def test_user_format_char():
    assert user_format("%c%c", 72, "i") == "Hi"


def test_user_format_percent_and_unknown():
    assert user_format("100%%") == "100%"
    assert user_format("%q") == "%q"


def test_trailing_percent_is_dropped():
    assert user_format("abc%") == "abc"
    assert kernel_format("abc%") == "abc"


def test_kernel_format_has_no_char_escape():
    assert kernel_format("%c", 65) == "%c"


def test_kernel_format_signed():
    assert kernel_format("cpu%d: %d", 0, -7) == "cpu0: -7"


def test_kernel_format_null_fmt_panics():
    with pytest.raises(KernelPanic):
        kernel_format(None)


def test_missing_argument():
    with pytest.raises(TypeError):
        user_format("%d %d", 1)
    with pytest.raises(TypeError):
        kernel_format("%s")