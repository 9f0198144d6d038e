import pytest

from sixfs.fmt import format_cprintf, format_printf


@pytest.mark.parametrize("n", [0, 1, 9, 10, 12345, -1, -42, 2**31 - 1, -(2**31)])
def test_decimal_round_trip(n):
    assert int(format_printf("%d", n)) == n
    assert int(format_cprintf("%d", n)) == n


def test_decimal_wraps_to_32_bits():
    assert int(format_printf("%d", 2**31)) == 2**31 - 2**32


def test_hex_upper_case():
    assert format_printf("%x", 255) == "FF"


def test_hex_is_unsigned():
    assert format_printf("%x", -1) == "FFFFFFFF"


@pytest.mark.parametrize("n", [0, 7, 255, 4096, 0xDEADBEEF, -5])
def test_hex_round_trip_and_case(n):
    text = format_printf("%p", n)
    assert int(text, 16) == n & 0xFFFFFFFF
    assert format_cprintf("%x", n) == text.lower()


def test_string_and_null():
    assert format_printf("%s-%s", "init", None) == "init-(null)"
    assert format_cprintf("%s", None) == "(null)"


def test_string_stops_at_nul():
    assert format_printf("[%s]", "ab\0cd") == "[ab]"


def test_char():
    assert format_printf("%c%c", ord("z"), "q") == "zq"


def test_percent_and_unknown():
    assert format_printf("100%% %q") == "100% %q"
    assert format_cprintf("100%% %q") == "100% %q"


def test_cprintf_has_no_char_conversion():
    assert format_cprintf("%c%d", 5) == "%c5"


def test_trailing_percent_dropped():
    assert format_printf("ab%") == "ab"
    assert format_cprintf("ab%") == "ab"


def test_mixed_message():
    assert format_printf("ls: cannot open %s\n", "x") == "ls: cannot open x\n"


def test_missing_argument():
    with pytest.raises(TypeError):
        format_printf("%d %d", 1)


def test_cprintf_null_format():
    with pytest.raises(ValueError):
        format_cprintf(None)