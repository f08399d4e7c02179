"""PC keyboard scan-code decoding."""

from __future__ import annotations

KBSTATP = 0x64
KBS_DIB = 0x01
KBDATAP = 0x60

NO = 0

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2

CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5

E0ESC = 1 << 6

KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def ctrl(ch: str) -> int:
    """Code produced by Control plus ``ch``."""
    return (ord(ch) - ord("@")) & 0xFF


def _table(dense: list[int], sparse: dict[int, int]) -> tuple[int, ...]:
    table = dense + [NO] * (256 - len(dense))
    for index, value in sparse.items():
        table[index] = value
    return tuple(table)


def _codes(text: str) -> list[int]:
    return [ord(ch) for ch in text]


_NAV_KEYS = {
    0xC8: KEY_UP,
    0xD0: KEY_DN,
    0xC9: KEY_PGUP,
    0xD1: KEY_PGDN,
    0xCB: KEY_LF,
    0xCD: KEY_RT,
    0x97: KEY_HOME,
    0xCF: KEY_END,
    0xD2: KEY_INS,
    0xD3: KEY_DEL,
}

_KEYPAD = "\0" * 7 + "789-456+1" + "230." + "\0" * 4

SHIFTCODE = _table([], {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT})
TOGGLECODE = _table([], {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK})

NORMALMAP = _table(
    _codes(
        "\0\x1b1234567890-=\b\t"
        "qwertyuiop[]\n\0as"
        "dfghjkl;'`\0\\zxcv"
        "bnm,./\0*\0 \0\0\0\0\0\0" + _KEYPAD
    ),
    {0x9C: ord("\n"), 0xB5: ord("/"), **_NAV_KEYS},
)

SHIFTMAP = _table(
    _codes(
        "\0\x1b!@#$%^&*()_+\b\t"
        "QWERTYUIOP{}\n\0AS"
        'DFGHJKL:"~\0|ZXCV'
        "BNM<>?\0*\0 \0\0\0\0\0\0" + _KEYPAD
    ),
    {0x9C: ord("\n"), 0xB5: ord("/"), **_NAV_KEYS},
)

CTLMAP = _table(
    [NO] * 16
    + [ctrl(c) for c in "QWERTYUI"]
    + [ctrl("O"), ctrl("P"), NO, NO, ord("\r"), NO, ctrl("A"), ctrl("S")]
    + [ctrl(c) for c in "DFGHJKL"]
    + [NO, NO, NO, NO, ctrl("\\"), ctrl("Z"), ctrl("X"), ctrl("C"), ctrl("V")]
    + [ctrl("B"), ctrl("N"), ctrl("M"), NO, NO, ctrl("/"), NO, NO],
    {0x9C: ord("\r"), 0xB5: ctrl("/"), **_NAV_KEYS},
)

_CHARCODE = (NORMALMAP, SHIFTMAP, CTLMAP, CTLMAP)


class KeyboardDecoder:
    """Turns scan codes into character codes while tracking modifier keys."""

    def __init__(self) -> None:
        self.modifiers = 0

    def feed(self, data: int) -> int:
        """Decode one scan-code byte; returns 0 when no character results."""
        if not 0 <= data <= 0xFF:
            raise ValueError(f"scan code out of range: {data}")
        if data == 0xE0:
            self.modifiers |= E0ESC
            return 0
        if data & 0x80:
            if not self.modifiers & E0ESC:
                data &= 0x7F
            self.modifiers &= ~(SHIFTCODE[data] | E0ESC)
            return 0
        if self.modifiers & E0ESC:
            data |= 0x80
            self.modifiers &= ~E0ESC

        self.modifiers |= SHIFTCODE[data]
        self.modifiers ^= TOGGLECODE[data]
        c = _CHARCODE[self.modifiers & (CTL | SHIFT)][data]
        if self.modifiers & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c -= ord("a") - ord("A")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c