"""HID Keyboard/Keypad page (0x07) usage ids understood by the scan framer."""

from __future__ import annotations

KEY_ENTER = 0x28
KEY_KEYPAD_ENTER = 0x58
ENTER_KEYS = frozenset({KEY_ENTER, KEY_KEYPAD_ENTER})

KEY_SPACE = 0x2C
KEY_MINUS = 0x2D
KEY_EQUAL = 0x2E
KEY_BACKSLASH = 0x31
KEY_COMMA = 0x36
KEY_DOT = 0x37
KEY_SLASH = 0x38

KEY_CHARS: dict[int, str] = {
    **{0x04 + offset: chr(ord("a") + offset) for offset in range(26)},
    **{0x1E + offset: str((offset + 1) % 10) for offset in range(10)},
    KEY_SPACE: " ",
    KEY_MINUS: "-",
    KEY_EQUAL: "=",
    KEY_BACKSLASH: "\\",
    KEY_COMMA: ",",
    KEY_DOT: ".",
    KEY_SLASH: "/",
}


def char_for_key(key_code: int) -> str | None:
    return KEY_CHARS.get(key_code)


def is_enter(key_code: int) -> bool:
    return key_code in ENTER_KEYS


def key_for_char(char: str) -> int | None:
    """Reverse lookup, mostly useful for replaying captured scans."""
    for code, mapped in KEY_CHARS.items():
        if mapped == char:
            return code
    return None
