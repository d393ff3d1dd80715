"""Binary snapshot frame codec.

A frame is one complete snapshot of every outbound group. Integers are
big-endian and fixed width; strings are a uvarint byte length followed by
UTF-8 bytes::

    u16 group_count
      vstring tag, vstring type, u8 selectable, vstring selected
      u16 item_count
        vstring tag, vstring type, i64 url_test_time, i32 url_test_delay

A group count of zero is the frame sent while no group service is attached.
Strings longer than ``MAX_VSTRING_LEN`` bytes are rejected on both sides.
Frames are built in memory and written in one call, and a decode either
returns the whole snapshot or raises ``FrameDecodeError``.
"""

from __future__ import annotations

import asyncio
import struct
from typing import Any, Iterable, List, Protocol

from .errors import FrameDecodeError, FrameEncodeError
from .types import GroupIterator, OutboundGroup, OutboundGroupItem

_U16 = struct.Struct(">H")
_U8 = struct.Struct(">B")
_I64 = struct.Struct(">q")
_I32 = struct.Struct(">i")

MAX_COUNT = 0xFFFF
MAX_UVARINT_LEN = 10
MAX_VSTRING_LEN = 0xFFFF

EMPTY_FRAME = _U16.pack(0)


class FrameReader(Protocol):
    async def readexactly(self, n: int) -> bytes: ...


class FrameWriter(Protocol):
    def write(self, data: bytes) -> Any: ...

    async def drain(self) -> None: ...


def append_uvarint(buffer: bytearray, value: int) -> None:
    if value < 0:
        raise FrameEncodeError(f"uvarint cannot encode negative value {value}")
    while value >= 0x80:
        buffer.append((value & 0x7F) | 0x80)
        value >>= 7
    buffer.append(value)


def write_uvarint(value: int) -> bytes:
    buffer = bytearray()
    append_uvarint(buffer, value)
    return bytes(buffer)


def append_vstring(buffer: bytearray, value: str) -> None:
    raw = value.encode("utf-8")
    if len(raw) > MAX_VSTRING_LEN:
        raise FrameEncodeError(f"string too long: {len(raw)} > {MAX_VSTRING_LEN} bytes")
    append_uvarint(buffer, len(raw))
    buffer.extend(raw)


def _append_struct(buffer: bytearray, codec: struct.Struct, value: Any, field: str) -> None:
    try:
        buffer.extend(codec.pack(value))
    except struct.error as exc:
        raise FrameEncodeError(f"{field} out of range: {value!r}") from exc


def _append_count(buffer: bytearray, count: int, field: str) -> None:
    if count > MAX_COUNT:
        raise FrameEncodeError(f"too many {field}: {count} > {MAX_COUNT}")
    buffer.extend(_U16.pack(count))


def encode_groups(groups: Iterable[OutboundGroup]) -> bytes:
    group_list = list(groups)
    buffer = bytearray()
    _append_count(buffer, len(group_list), "groups")
    for group in group_list:
        append_vstring(buffer, group.tag)
        append_vstring(buffer, group.type)
        buffer.extend(_U8.pack(1 if group.selectable else 0))
        append_vstring(buffer, group.selected)
        _append_count(buffer, len(group.items), "items")
        for item in group.items:
            append_vstring(buffer, item.tag)
            append_vstring(buffer, item.type)
            _append_struct(buffer, _I64, item.url_test_time, "url_test_time")
            _append_struct(buffer, _I32, item.url_test_delay, "url_test_delay")
    return bytes(buffer)


async def write_groups(writer: FrameWriter, groups: Iterable[OutboundGroup]) -> None:
    writer.write(encode_groups(groups))
    await writer.drain()


async def write_empty(writer: FrameWriter) -> None:
    writer.write(EMPTY_FRAME)
    await writer.drain()


async def _read_exactly(reader: FrameReader, n: int) -> bytes:
    try:
        return await reader.readexactly(n)
    except asyncio.IncompleteReadError as exc:
        raise FrameDecodeError(
            f"unexpected EOF: read {len(exc.partial)} of {n} bytes"
        ) from exc


async def read_uvarint(reader: FrameReader) -> int:
    value = 0
    shift = 0
    for index in range(MAX_UVARINT_LEN):
        byte = (await _read_exactly(reader, 1))[0]
        if byte < 0x80:
            if index == MAX_UVARINT_LEN - 1 and byte > 1:
                raise FrameDecodeError("uvarint overflows a 64-bit integer")
            return value | (byte << shift)
        value |= (byte & 0x7F) << shift
        shift += 7
    raise FrameDecodeError("uvarint overflows a 64-bit integer")


async def read_vstring(reader: FrameReader) -> str:
    length = await read_uvarint(reader)
    if length > MAX_VSTRING_LEN:
        raise FrameDecodeError(f"string length {length} exceeds {MAX_VSTRING_LEN} bytes")
    if length == 0:
        return ""
    raw = await _read_exactly(reader, length)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FrameDecodeError(f"invalid utf-8 string: {exc}") from exc


async def _read_struct(reader: FrameReader, codec: struct.Struct) -> Any:
    return codec.unpack(await _read_exactly(reader, codec.size))[0]


async def _read_frame(reader: FrameReader) -> List[OutboundGroup]:
    group_count = await _read_struct(reader, _U16)
    groups: List[OutboundGroup] = []
    for _ in range(group_count):
        tag = await read_vstring(reader)
        group_type = await read_vstring(reader)
        selectable = await _read_struct(reader, _U8) != 0
        selected = await read_vstring(reader)
        item_count = await _read_struct(reader, _U16)
        items: List[OutboundGroupItem] = []
        for _ in range(item_count):
            item_tag = await read_vstring(reader)
            item_type = await read_vstring(reader)
            url_test_time = await _read_struct(reader, _I64)
            url_test_delay = await _read_struct(reader, _I32)
            items.append(
                OutboundGroupItem(
                    tag=item_tag,
                    type=item_type,
                    url_test_time=url_test_time,
                    url_test_delay=url_test_delay,
                )
            )
        groups.append(
            OutboundGroup(
                tag=tag,
                type=group_type,
                selectable=selectable,
                selected=selected,
                items=items,
            )
        )
    return groups


async def read_groups(reader: FrameReader) -> GroupIterator:
    """Read one frame from a stream and return a fresh iterator over it."""
    return GroupIterator(await _read_frame(reader))


class _BytesReader:
    __slots__ = ("_data", "_offset")

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._offset = 0

    async def readexactly(self, n: int) -> bytes:
        end = self._offset + n
        chunk = bytes(self._data[self._offset:end])
        self._offset = min(end, len(self._data))
        if len(chunk) < n:
            raise asyncio.IncompleteReadError(chunk, n)
        return chunk

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset


async def decode_groups(data: bytes) -> List[OutboundGroup]:
    """Decode a frame carried as one whole message (e.g. a websocket frame)."""
    reader = _BytesReader(data)
    groups = await _read_frame(reader)
    if reader.remaining:
        raise FrameDecodeError(f"{reader.remaining} trailing bytes after frame")
    return groups
