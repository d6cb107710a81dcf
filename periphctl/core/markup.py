"""Receipt markup to ESC/POS byte stream transpiler."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

ENCODING = "gb18030"
SEPARATOR_WIDTH = 32
INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

INIT = b"\x1b\x40"
LF = b"\x0a"
CUT_PARTIAL = b"\x1d\x56\x42\x00"
BOLD_ON = b"\x1b\x45\x01"
BOLD_OFF = b"\x1b\x45\x00"
UNDERLINE_ON = b"\x1b\x2d\x01"
UNDERLINE_OFF = b"\x1b\x2d\x00"
ALIGN_LEFT = b"\x1b\x61\x00"
ALIGN_CENTER = b"\x1b\x61\x01"
ALIGN_RIGHT = b"\x1b\x61\x02"
SIZE_NORMAL = b"\x1d\x21\x00"
SIZE_DOUBLE = b"\x1d\x21\x11"
SIZE_TRIPLE = b"\x1d\x21\x22"
SIZE_DOUBLE_WIDTH = b"\x1d\x21\x10"
RESET_STYLE = BOLD_OFF + UNDERLINE_OFF + SIZE_NORMAL

_SIZE_VALUE_RE = re.compile(r"[+-]?\d+")
_LINE_START = ("\n", "]", ">")
_LINE_END = ("\n", "[", "<")


@dataclass
class StyleState:
    bold: bool = False
    underline: bool = False
    alignment: str = "left"

    def check_balanced(self) -> None:
        if self.bold:
            LOGGER.debug("Markup leaves bold switched on at end of input")
        if self.underline:
            LOGGER.debug("Markup leaves underline switched on at end of input")


def _encode(text: str, encoding: str) -> bytes:
    return text.encode(encoding, errors="replace")


def _size_command(value: str) -> bytes:
    size = int(value) if _SIZE_VALUE_RE.fullmatch(value) else 1
    # Values that do not fit a signed 32-bit int read as unparseable.
    if not INT32_MIN <= size <= INT32_MAX:
        size = 1
    if size >= 3:
        return SIZE_TRIPLE
    if size == 2:
        return SIZE_DOUBLE
    return SIZE_NORMAL


class _Transpiler:
    def __init__(self, text: str, encoding: str) -> None:
        self.text = text
        self.encoding = encoding
        self.out = bytearray()
        self.state = StyleState()

    def run(self) -> bytes:
        pos = 0
        while pos < len(self.text):
            pos = self._step(pos)
        self.state.check_balanced()
        return bytes(self.out)

    def _step(self, pos: int) -> int:
        for rule in (
            self._bold,
            self._italic,
            self._underline,
            self._strike,
            self._xl,
            self._large,
            self._small,
            self._separator,
            self._line_break,
            self._bracket_tag,
        ):
            advanced = rule(pos)
            if advanced is not None:
                return advanced

        char = self.text[pos]
        self.out += LF if char == "\n" else _encode(char, self.encoding)
        return pos + 1

    def _emit_text(self, content: str) -> None:
        self.out += _encode(content, self.encoding)

    def _delimited(self, pos: int, delimiter: str) -> tuple[str, int] | None:
        width = len(delimiter)
        if pos >= len(self.text) - width or not self.text.startswith(delimiter, pos):
            return None
        end = self.text.find(delimiter, pos + width)
        if end == -1:
            return None
        return self.text[pos + width : end], end + width

    def _tagged(self, pos: int, tag: str) -> tuple[str, int] | None:
        opening = f"<{tag}>"
        closing = f"</{tag}>"
        if not self.text.startswith(opening, pos):
            return None
        end = self.text.find(closing, pos)
        if end == -1:
            return None
        return self.text[pos + len(opening) : end], end + len(closing)

    def _bold(self, pos: int) -> int | None:
        span = self._delimited(pos, "**")
        if span is None:
            return None
        content, end = span
        self.out += BOLD_ON
        self._emit_text(content)
        self.out += BOLD_OFF
        return end

    def _italic(self, pos: int) -> int | None:
        text = self.text
        if pos >= len(text) - 1 or text[pos] != "*" or text[pos + 1] == "*":
            return None
        end = text.find("*", pos + 1)
        if end == -1:
            return None
        self._emit_text(text[pos + 1 : end])
        return end + 1

    def _underline(self, pos: int) -> int | None:
        span = self._delimited(pos, "__")
        if span is None:
            return None
        content, end = span
        self.out += UNDERLINE_ON
        self._emit_text(content)
        self.out += UNDERLINE_OFF
        return end

    def _strike(self, pos: int) -> int | None:
        span = self._delimited(pos, "~~")
        if span is None:
            return None
        content, end = span
        self._emit_text(content)
        return end

    def _xl(self, pos: int) -> int | None:
        span = self._tagged(pos, "xl")
        if span is None:
            return None
        content, end = span
        self.out += SIZE_DOUBLE + BOLD_ON
        self._emit_text(content)
        self.out += BOLD_OFF + SIZE_NORMAL
        return end

    def _large(self, pos: int) -> int | None:
        span = self._tagged(pos, "large")
        if span is None:
            return None
        content, end = span
        self.out += SIZE_DOUBLE_WIDTH
        self._emit_text(content)
        self.out += SIZE_NORMAL
        return end

    def _small(self, pos: int) -> int | None:
        span = self._tagged(pos, "small")
        if span is None:
            return None
        content, end = span
        self._emit_text(content)
        return end

    def _separator(self, pos: int) -> int | None:
        text = self.text
        char = text[pos]
        if char not in "=-":
            return None
        if pos > 0 and text[pos - 1] not in _LINE_START:
            return None
        end = pos
        while end < len(text) and text[end] == char:
            end += 1
        if end - pos < 3:
            return None
        if end < len(text) and text[end] not in _LINE_END:
            return None
        self._emit_text(char * SEPARATOR_WIDTH)
        self.out += LF
        return end

    def _line_break(self, pos: int) -> int | None:
        if not self.text.startswith("<br>", pos):
            return None
        self.out += LF
        return pos + 4

    def _bracket_tag(self, pos: int) -> int | None:
        if self.text[pos] != "[":
            return None
        close = self.text.find("]", pos)
        if close == -1:
            return None
        command = self._tag_command(self.text[pos + 1 : close])
        if command is None:
            return None
        self.out += command
        return close + 1

    def _tag_command(self, tag: str) -> bytes | None:
        state = self.state
        if tag == "bold":
            state.bold = True
            return BOLD_ON
        if tag == "/bold":
            state.bold = False
            return BOLD_OFF
        if tag == "underline":
            state.underline = True
            return UNDERLINE_ON
        if tag == "/underline":
            state.underline = False
            return UNDERLINE_OFF
        if tag in ("left", "center", "right"):
            state.alignment = tag
            return {"left": ALIGN_LEFT, "center": ALIGN_CENTER, "right": ALIGN_RIGHT}[tag]
        if tag in ("/left", "/center", "/right"):
            # Alignment persists until the next explicit alignment tag.
            return b""
        if tag.startswith("size="):
            return _size_command(tag[5:])
        if tag == "/size":
            return SIZE_NORMAL
        return None


def transpile_body(text: str, *, encoding: str = ENCODING) -> bytes:
    """Translate markup into ESC/POS commands without the init/cut framing."""
    return _Transpiler(text, encoding).run()


def transpile(text: str, *, encoding: str = ENCODING) -> bytes:
    """Build a complete print job for ``text``.

    Supported markup: ``**bold**``, ``*italic*``, ``__underline__``,
    ``~~strike~~``, ``<xl>``, ``<large>``, ``<small>``, ``<br>``, separator
    lines of ``===``/``---`` and bracket tags such as ``[center]``,
    ``[bold]``/``[/bold]`` and ``[size=N]``. Anything unrecognised is printed
    literally.
    """
    return INIT + transpile_body(text, encoding=encoding) + LF + LF + CUT_PARTIAL + RESET_STYLE
