"""Incremental framing of a child process's stdout into complete records.

A splitter is a pure function ``splitter(data) -> (records, rest)``: it
returns every complete record found at the front of ``data`` and the
incomplete suffix that must be kept for the next read. ``StreamFramer`` owns
the retained bytes between reads.
"""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

Splitter = Callable[[bytes], tuple[list[bytes], bytes]]

PLIST_HEADER = b'<?xml version="1.0" encoding="UTF-8"?>'
PLIST_END = b"</plist>"
SEPARATOR_BYTES = b"\x00\r\n\t "
DEFAULT_MAX_BUFFER_BYTES = 1024 * 1024


def split_lines(data: bytes) -> tuple[list[bytes], bytes]:
    """Split newline-terminated records; the unterminated tail is kept byte-exact."""
    *complete, tail = data.split(b"\n")
    records = [line.removesuffix(b"\r") for line in complete if line.strip()]
    return records, tail


def split_plist_documents(data: bytes) -> tuple[list[bytes], bytes]:
    """Split a stream of concatenated XML plist documents.

    Each record runs from a document header to its closing ``</plist>``. A
    final document without ``</plist>`` is returned, header included, as the
    remainder. Bytes after the last complete document are kept as well since
    they may hold the start of the next header.
    """
    parts = data.split(PLIST_HEADER)
    if len(parts) == 1:
        return [], data

    head = parts[0]
    if head.strip(SEPARATOR_BYTES):
        logger.debug("discarding %d bytes before plist header", len(head))

    records: list[bytes] = []
    last_index = len(parts) - 1
    for index, part in enumerate(parts[1:], start=1):
        end = part.rfind(PLIST_END)
        if end == -1:
            if index == last_index:
                return records, PLIST_HEADER + part
            # Truncated document followed by a new header; translation rejects it.
            records.append(PLIST_HEADER + part)
            continue
        stop = end + len(PLIST_END)
        records.append(PLIST_HEADER + part[:stop])
        if index == last_index:
            return records, part[stop:].lstrip(SEPARATOR_BYTES)
    return records, b""


class StreamFramer:
    """Accumulates raw reads and yields complete records in stream order."""

    def __init__(self, splitter: Splitter, max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES) -> None:
        self._splitter = splitter
        self.max_buffer_bytes = max_buffer_bytes
        self.buffer = b""

    def feed(self, chunk: bytes) -> list[bytes]:
        records, rest = self._splitter(self.buffer + chunk)
        if len(rest) > self.max_buffer_bytes:
            logger.warning(
                "discarding %d buffered bytes without a record boundary (limit %d)",
                len(rest),
                self.max_buffer_bytes,
            )
            rest = b""
        self.buffer = rest
        return records

    @property
    def pending(self) -> int:
        return len(self.buffer)
