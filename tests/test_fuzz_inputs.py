from __future__ import annotations

import plistlib
import random
import string
from datetime import datetime

import pytest

from mac_observer.collectors.framing import StreamFramer, split_lines, split_plist_documents
from mac_observer.collectors.translators import (
    parse_fs_usage_line,
    parse_iostat_line,
    parse_log_line,
    parse_metrics_json,
    parse_metrics_plist,
    parse_metrics_record,
)
from mac_observer.errors import ParseError

SEED = 20240501
PLIST_HEADER = b'<?xml version="1.0" encoding="UTF-8"?>\n'
ELEMENT_TAGS = ["date", "integer", "real", "string", "true", "false", "data", "key", "dict", "array"]


@pytest.fixture()
def rng() -> random.Random:
    return random.Random(SEED)


def _rand_text(rng: random.Random, n: int) -> str:
    alphabet = string.ascii_letters + string.digits + "{}[],:\"'\\ .-"
    return "".join(rng.choice(alphabet) for _ in range(n))


def _rand_element(rng: random.Random, depth: int = 0) -> str:
    tag = rng.choice(ELEMENT_TAGS if depth < 3 else ELEMENT_TAGS[:7])
    if tag in ("true", "false"):
        return f"<{tag}/>"
    if tag == "dict":
        items = "".join(f"<key>{rng.choice(['processor', 'cpu_power', 'gpu', 'memory', 'timestamp'])}</key>{_rand_element(rng, depth + 1)}" for _ in range(rng.randint(0, 3)))
        return f"<dict>{items}</dict>"
    if tag == "array":
        return "<array>" + "".join(_rand_element(rng, depth + 1) for _ in range(rng.randint(0, 3))) + "</array>"
    return f"<{tag}>{_rand_text(rng, rng.randint(0, 24))}</{tag}>"


def _chunked(framer: StreamFramer, stream: bytes, rng: random.Random) -> list[bytes]:
    records: list[bytes] = []
    position = 0
    while position < len(stream):
        step = rng.randint(1, 64)
        records.extend(framer.feed(stream[position : position + step]))
        position += step
    return records


@pytest.mark.parametrize("translate", [parse_log_line, parse_metrics_json, parse_metrics_record, parse_iostat_line])
def test_translators_only_raise_parse_error(translate, rng: random.Random) -> None:
    for _ in range(50):
        record = _rand_text(rng, rng.randint(0, 512)).encode("utf-8")
        try:
            translate(record)
        except ParseError:
            pass


def test_plist_translator_only_raises_parse_error(rng: random.Random) -> None:
    for _ in range(200):
        body = "".join(_rand_element(rng) for _ in range(rng.randint(1, 4)))
        record = PLIST_HEADER + f"<plist version=\"1.0\"><dict><key>processor</key>{body}</dict></plist>".encode()
        try:
            parse_metrics_plist(record)
        except ParseError:
            pass


def test_plist_translator_survives_truncated_documents(rng: random.Random) -> None:
    document = plistlib.dumps(
        {
            "timestamp": datetime(2024, 5, 1, 12, 0, 0),
            "processor": {"cpu_power": 1250.0, "cpu_usage": 37.5},
            "gpu": {"gpu_power": 300.0},
            "memory": {"memory_pressure": "Warning", "used_memory_mb": 8192},
        }
    )
    for _ in range(100):
        cut = rng.randint(0, len(document))
        mangled = document[:cut] + _rand_text(rng, rng.randint(0, 8)).encode() + document[cut:]
        try:
            parse_metrics_plist(mangled)
        except ParseError:
            pass


def test_fs_usage_translator_never_raises(rng: random.Random) -> None:
    for _ in range(50):
        words = [_rand_text(rng, rng.randint(1, 12)) for _ in range(rng.randint(0, 10))]
        words.insert(rng.randint(0, len(words)), rng.choice(["read", "write", "open", "/tmp/x"]))
        parse_fs_usage_line(" ".join(words).encode("utf-8"))


def test_line_framer_is_independent_of_chunking(rng: random.Random) -> None:
    for _ in range(20):
        stream = "\n".join(_rand_text(rng, rng.randint(0, 40)) for _ in range(20)).encode("utf-8")
        whole = StreamFramer(split_lines)
        expected = whole.feed(stream)
        pieces = StreamFramer(split_lines)

        assert _chunked(pieces, stream, rng) == expected
        assert pieces.buffer == whole.buffer


def test_plist_framer_is_independent_of_chunking(rng: random.Random) -> None:
    for _ in range(20):
        documents = [
            plistlib.dumps({"processor": {"cpu_power": float(rng.randint(0, 5000))}, "note": _rand_text(rng, 10)})
            for _ in range(rng.randint(1, 5))
        ]
        stream = b"".join(document + rng.choice([b"\x00", b"\n", b"\x00\n", b""]) for document in documents)
        whole = StreamFramer(split_plist_documents)
        expected = whole.feed(stream)
        pieces = StreamFramer(split_plist_documents)

        assert _chunked(pieces, stream, rng) == expected
        assert [parse_metrics_plist(record).cpu_power_mw for record in expected] == [
            plistlib.loads(document)["processor"]["cpu_power"] for document in documents
        ]
