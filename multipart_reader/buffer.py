from __future__ import annotations


class ByteBuffer:
    """
    A growable byte sequence that is consumed from the front.

    New data is appended to the tail with :meth:`append`, and processed data
    is removed from the head with :meth:`pull`.  Nothing is ever reordered.
    """

    def __init__(self, initial: bytes = b"") -> None:
        self._data = bytearray(initial)

    def append(self, data: bytes) -> None:
        self._data += data

    def index_of(self, pattern: bytes, start: int = 0) -> int:
        """Returns the position of the first occurrence of ``pattern`` at or
        after ``start``, or -1 if it is not present.
        """
        return self._data.find(pattern, start)

    def peek(self, start: int = 0, end: int | None = None) -> bytes:
        """Returns a copy of ``buffer[start:end]`` without consuming it."""
        return bytes(self._data[start:end])

    def startswith(self, prefix: bytes) -> bool:
        return self._data.startswith(prefix)

    def pull(self, length: int) -> bytes:
        """Removes the first ``length`` bytes and returns them."""
        if length < 0 or length > len(self._data):
            raise ValueError("Cannot pull %d bytes from a buffer of length %d" % (length, len(self._data)))

        data = bytes(self._data[:length])
        del self._data[:length]
        return data

    def to_bytes(self) -> bytes:
        """Returns a copy of the buffered data."""
        return bytes(self._data)

    def clear(self) -> None:
        del self._data[:]

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return len(self._data) > 0

    def __repr__(self) -> str:
        return "%s(length=%d)" % (self.__class__.__name__, len(self._data))
