"""HID Report Descriptor decoding down to the top-level (Usage Page, Usage)."""

from __future__ import annotations

from collections.abc import Iterator

from periphctl.core.model import UsagePair

ITEM_TYPE_MAIN = 0
ITEM_TYPE_GLOBAL = 1
ITEM_TYPE_LOCAL = 2
TAG_USAGE_PAGE = 0
TAG_USAGE = 0

_DATA_LENGTHS = {0: 0, 1: 1, 2: 2, 3: 4}


def _read_value(data: bytes, offset: int, length: int) -> int:
    return int.from_bytes(data[offset : offset + length], "little", signed=False)


def iter_items(descriptor: bytes) -> Iterator[tuple[int, int, int, int]]:
    """Yield ``(item_type, tag, data_length, value)`` for each complete short item.

    Iteration stops silently at the first item whose payload would run past the
    end of the buffer.
    """
    cursor = 0
    end = len(descriptor)
    while cursor < end:
        prefix = descriptor[cursor]
        tag = (prefix >> 4) & 0x0F
        item_type = (prefix >> 2) & 0x03
        length = _DATA_LENGTHS[prefix & 0x03]
        if cursor + 1 + length > end:
            return
        yield item_type, tag, length, _read_value(descriptor, cursor + 1, length)
        cursor += 1 + length


def parse_usage(descriptor: bytes) -> UsagePair | None:
    usage_page: int | None = None
    usage: int | None = None

    for item_type, tag, length, value in iter_items(descriptor):
        if length == 0:
            continue
        if item_type == ITEM_TYPE_GLOBAL and tag == TAG_USAGE_PAGE and usage_page is None:
            usage_page = value
        elif item_type == ITEM_TYPE_LOCAL and tag == TAG_USAGE and usage is None:
            usage = value
        if usage_page is not None and usage is not None:
            break

    if usage_page is None and usage is None:
        return None
    return UsagePair(usage_page=usage_page or 0, usage=usage or 0)
