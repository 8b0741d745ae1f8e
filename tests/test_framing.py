from __future__ import annotations

import pytest

from mac_observer.collectors.framing import (
    PLIST_HEADER,
    StreamFramer,
    split_lines,
    split_plist_documents,
)


def _plist(body: bytes) -> bytes:
    return PLIST_HEADER + b"\n<plist version=\"1.0\"><dict>" + body + b"</dict></plist>"


def test_line_framer_keeps_partial_record_between_reads() -> None:
    framer = StreamFramer(split_lines)

    assert framer.feed(b'{"a":1}\n{"a":') == [b'{"a":1}']
    assert framer.buffer == b'{"a":'

    assert framer.feed(b"2}\n") == [b'{"a":2}']
    assert framer.buffer == b""


def test_split_lines_drops_blank_lines_and_carriage_returns() -> None:
    records, rest = split_lines(b"first\r\n\n   \nsecond\nthi")

    assert records == [b"first", b"second"]
    assert rest == b"thi"


def test_split_lines_without_newline_returns_everything_as_rest() -> None:
    assert split_lines(b"no newline yet") == ([], b"no newline yet")


@pytest.mark.parametrize("chunk_size", [1, 2, 3, 5, 7, 64])
def test_line_framer_output_is_independent_of_chunking(chunk_size: int) -> None:
    stream = b"alpha\nbeta\r\n\ngamma delta\nepsilon\npartial"
    framer = StreamFramer(split_lines)
    records: list[bytes] = []
    for start in range(0, len(stream), chunk_size):
        records.extend(framer.feed(stream[start : start + chunk_size]))

    assert records == [b"alpha", b"beta", b"gamma delta", b"epsilon"]
    assert framer.buffer == b"partial"


def test_split_plist_documents_emits_complete_documents() -> None:
    first = _plist(b"<key>n</key><integer>1</integer>")
    second = _plist(b"<key>n</key><integer>2</integer>")

    records, rest = split_plist_documents(first + b"\x00\n" + second + b"\x00")

    assert records == [first, second]
    assert rest == b""


def test_split_plist_documents_keeps_unterminated_document() -> None:
    first = _plist(b"")
    partial = PLIST_HEADER + b"\n<plist version=\"1.0\"><dict><key>n"

    records, rest = split_plist_documents(first + b"\n" + partial)

    assert records == [first]
    assert rest == partial


def test_split_plist_documents_without_header_retains_data() -> None:
    assert split_plist_documents(b"<?xml vers") == ([], b"<?xml vers")


def test_split_plist_documents_emits_truncated_document_followed_by_header() -> None:
    truncated = PLIST_HEADER + b"<plist><dict>"
    complete = _plist(b"")

    records, rest = split_plist_documents(truncated + complete)

    assert records == [truncated, complete]
    assert rest == b""


@pytest.mark.parametrize("chunk_size", [1, 13, 40, 1000])
def test_plist_framer_output_is_independent_of_chunking(chunk_size: int) -> None:
    documents = [_plist(f"<key>n</key><integer>{index}</integer>".encode()) for index in range(3)]
    stream = b"\x00".join(documents) + b"\x00"
    framer = StreamFramer(split_plist_documents)
    records: list[bytes] = []
    for start in range(0, len(stream), chunk_size):
        records.extend(framer.feed(stream[start : start + chunk_size]))

    assert records == documents
    assert framer.pending == 0


def test_framer_discards_oversized_remainder() -> None:
    framer = StreamFramer(split_lines, max_buffer_bytes=8)

    assert framer.feed(b"0123456789") == []
    assert framer.buffer == b""
    assert framer.feed(b"ok\n") == [b"ok"]
