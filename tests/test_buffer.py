from __future__ import annotations

import pytest

from multipart_reader.buffer import ByteBuffer


def test_append_and_pull_keep_order() -> None:
    buf = ByteBuffer(b"ab")
    buf.append(b"cd")
    buf.append(b"")
    buf.append(b"ef")

    assert len(buf) == 6
    assert buf.pull(3) == b"abc"
    assert buf.to_bytes() == b"def"
    assert buf.pull(3) == b"def"
    assert len(buf) == 0
    assert not buf


def test_pull_zero_is_empty() -> None:
    buf = ByteBuffer(b"abc")
    assert buf.pull(0) == b""
    assert buf.to_bytes() == b"abc"


@pytest.mark.parametrize("length", [-1, 4])
def test_pull_out_of_range(length: int) -> None:
    buf = ByteBuffer(b"abc")
    with pytest.raises(ValueError):
        buf.pull(length)

    # A failed pull leaves the contents untouched.
    assert buf.to_bytes() == b"abc"


def test_index_of() -> None:
    buf = ByteBuffer(b"\r\n--b\r\n--b--")
    assert buf.index_of(b"\r\n--b") == 0
    assert buf.index_of(b"\r\n--b", 1) == 5
    assert buf.index_of(b"\r\n--b--") == 5
    assert buf.index_of(b"missing") == -1


def test_peek_does_not_consume() -> None:
    buf = ByteBuffer(b"hello world")
    assert buf.peek(0, 5) == b"hello"
    assert buf.peek(6) == b"world"
    assert buf.peek() == b"hello world"
    assert len(buf) == 11


def test_returned_bytes_are_copies() -> None:
    buf = ByteBuffer(b"abc")
    snapshot = buf.to_bytes()
    buf.append(b"def")
    buf.clear()

    assert snapshot == b"abc"
    assert isinstance(snapshot, bytes)


def test_startswith() -> None:
    buf = ByteBuffer(b"\r\nContent")
    assert buf.startswith(b"\r\n")
    assert not buf.startswith(b"Content")


def test_clear_and_bool() -> None:
    buf = ByteBuffer()
    assert not buf
    buf.append(b"x")
    assert buf
    buf.clear()
    assert not buf
    assert buf.to_bytes() == b""


def test_repr() -> None:
    assert repr(ByteBuffer(b"abcd")) == "ByteBuffer(length=4)"
