"""Minimal printf-style formatting used by user programs and the kernel."""

from __future__ import annotations

from typing import Any, Iterator

from .layout import KernelPanic

_LOWER = "0123456789abcdef"
_UPPER = "0123456789ABCDEF"


def format_int(value: int, base: int, signed: bool = True, uppercase: bool = False) -> str:
    """Format a 32-bit integer in ``base``, treating it as signed if asked."""
    if not 2 <= base <= 16:
        raise ValueError(f"unsupported base {base}")
    digits = _UPPER if uppercase else _LOWER
    x = value & 0xFFFFFFFF
    negative = bool(signed and x & 0x80000000)
    if negative:
        x = (-x) & 0xFFFFFFFF
    out = []
    while True:
        out.append(digits[x % base])
        x //= base
        if x == 0:
            break
    if negative:
        out.append("-")
    return "".join(reversed(out))


def _arguments(args: tuple) -> Iterator[Any]:
    yield from args
    while True:
        raise TypeError("not enough arguments for format string")


def _string_arg(arg: Any) -> str:
    return "(null)" if arg is None else str(arg)


def _char_arg(arg: Any) -> str:
    if isinstance(arg, str):
        return arg[:1]
    return chr(int(arg) & 0xFF)


def user_format(fmt: str, *args: Any) -> str:
    """Format like the user-space printf: %d %x %p %s %c %%."""
    fmt = fmt.split("\0", 1)[0]
    params = _arguments(args)
    out = []
    in_escape = False
    for ch in fmt:
        if not in_escape:
            if ch == "%":
                in_escape = True
            else:
                out.append(ch)
            continue
        if ch == "d":
            out.append(format_int(int(next(params)), 10, True, True))
        elif ch in "xp":
            out.append(format_int(int(next(params)), 16, False, True))
        elif ch == "s":
            out.append(_string_arg(next(params)))
        elif ch == "c":
            out.append(_char_arg(next(params)))
        elif ch == "%":
            out.append("%")
        else:
            out.append("%" + ch)
        in_escape = False
    return "".join(out)


def kernel_format(fmt: str | None, *args: Any) -> str:
    """Format like the kernel's cprintf: %d %x %p %s %%."""
    if fmt is None:
        raise KernelPanic("null fmt")
    fmt = fmt.split("\0", 1)[0]
    params = _arguments(args)
    out = []
    chars = iter(fmt)
    for ch in chars:
        if ch != "%":
            out.append(ch)
            continue
        ch = next(chars, None)
        if ch is None:
            break
        if ch == "d":
            out.append(format_int(int(next(params)), 10, True, False))
        elif ch in "xp":
            out.append(format_int(int(next(params)), 16, False, False))
        elif ch == "s":
            out.append(_string_arg(next(params)))
        elif ch == "%":
            out.append("%")
        else:
            out.append("%" + ch)
    return "".join(out)