from __future__ import annotations

import inspect
import logging
from enum import IntEnum
from typing import TYPE_CHECKING, NamedTuple

from .buffer import ByteBuffer
from .exceptions import MalformedPartError, MalformedStreamError, MultipartParseError
from .headers import parse_header_value

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable
    from typing import Any, NoReturn, Protocol, Union

    class SupportsRead(Protocol):
        """A file-like source; ``read`` may be a coroutine function."""

        def read(self, __n: int) -> bytes | Awaitable[bytes]: ...

    ByteSource = Union[bytes, bytearray, memoryview, AsyncIterable[bytes], Iterable[bytes], SupportsRead]
    OnPartCallback = Callable[["Part"], Union[Awaitable[Any], None]]


class MultipartState(IntEnum):
    """States of the MultipartStreamReader."""

    PREAMBLE = 0
    SECTION_DIVIDER = 1
    SECTION_DIVIDER_BODY = 2
    SECTION_HEADER = 3
    BODY = 4
    SECTION_CLOSER = 5
    EPILOGUE = 6


CR = b"\r"
CRLF = b"\r\n"
HYPHENS = b"--"
HEADER_END = b"\r\n\r\n"
SPACE = b" "

DEFAULT_CHUNK_SIZE = 64 * 1024


class Part(NamedTuple):
    """A completed part.  ``body`` is a private copy of the part's data."""

    name: str
    content_type: str | None
    filename: str | None
    body: bytes


class CurrentPart:
    """The part whose body is currently being read."""

    def __init__(self) -> None:
        self.name: str | None = None
        self.content_type: str | None = None
        self.filename: str | None = None
        self.body = ByteBuffer()

    def finalize(self) -> Part:
        if self.name is None:
            raise MalformedPartError("Part was missing name")
        return Part(self.name, self.content_type, self.filename, self.body.to_bytes())

    def __repr__(self) -> str:
        return "%s(name=%r, content_type=%r, filename=%r, body=%r)" % (
            self.__class__.__name__,
            self.name,
            self.content_type,
            self.filename,
            self.body,
        )


async def _iter_chunks(stream: ByteSource, chunk_size: int) -> AsyncIterator[bytes]:
    """Adapts the supported byte sources to a single async iterator of
    non-empty chunks.  A bytes-like body is a single chunk.
    """
    if isinstance(stream, (bytes, bytearray, memoryview)):
        if stream:
            yield bytes(stream)
    elif hasattr(stream, "__aiter__"):
        async for chunk in stream:  # type: ignore[union-attr]
            if chunk:
                yield bytes(chunk)
    elif hasattr(stream, "read"):
        while True:
            chunk = stream.read(chunk_size)  # type: ignore[union-attr]
            if inspect.isawaitable(chunk):
                chunk = await chunk
            if not chunk:
                return
            yield bytes(chunk)
    else:
        for chunk in stream:  # type: ignore[union-attr]
            if chunk:
                yield bytes(chunk)


class MultipartStreamReader:
    """
    This class implements a state machine that reads a multipart message
    from a stream of byte chunks, and hands every completed part to the
    ``on_part`` callback.

    The stream may be a bytes-like object holding the whole body, an async
    iterable of bytes, a plain iterable of bytes, or an object with a
    (possibly async) ``read(n)`` method.  ``on_part`` is
    called with a :class:`Part` and may return an awaitable; it is awaited
    before any further data is read from the stream, so parts are delivered
    one at a time and in stream order.

    :param stream: The source of the message body.

    :param boundary: The multipart boundary, without the leading ``--``.

    :param on_part: The callback for completed parts.

    :param chunk_size: How much to ask for per call when the stream is read
                       through a ``read()`` method.
    """

    def __init__(
        self,
        stream: ByteSource,
        boundary: str | bytes,
        on_part: OnPartCallback,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.logger = logging.getLogger(__name__)

        if isinstance(boundary, str):
            boundary = boundary.encode("utf-8")
        if not boundary:
            raise ValueError("boundary must not be empty")
        if chunk_size < 1:
            raise ValueError("chunk_size must be a positive number, not %r" % chunk_size)

        self.boundary = boundary
        self.divider = CRLF + HYPHENS + boundary
        self.closer = self.divider + HYPHENS
        self.on_part = on_part

        self.state = MultipartState.PREAMBLE
        self.current_part: CurrentPart | None = None

        # The leading CRLF lets a body that starts directly with the
        # boundary line be found by the same divider search.
        self.buffer = ByteBuffer(CRLF)
        self._offset = -len(CRLF)

        self._chunks = _iter_chunks(stream, chunk_size)
        self._eof = False
        self._started = False
        self._finished = False

        self._handlers: dict[MultipartState, Callable[[], Awaitable[None]]] = {
            MultipartState.PREAMBLE: self._step_preamble,
            MultipartState.SECTION_DIVIDER: self._step_section_divider,
            MultipartState.SECTION_DIVIDER_BODY: self._step_section_divider_body,
            MultipartState.SECTION_HEADER: self._step_section_header,
            MultipartState.BODY: self._step_body,
            MultipartState.SECTION_CLOSER: self._step_section_closer,
            MultipartState.EPILOGUE: self._step_epilogue,
        }

    async def perform_work(self) -> None:
        """Reads the whole stream, dispatching parts as they complete.

        Raises a :class:`~multipart_reader.exceptions.MultipartParseError`
        subclass if the message is malformed.  Errors raised by ``on_part``
        are propagated unchanged.
        """
        if self._started:
            raise RuntimeError("perform_work() can only be called once")
        self._started = True

        try:
            while not self._finished:
                await self._handlers[self.state]()
        finally:
            await self._chunks.aclose()

    async def _read_chunk(self) -> bytes | None:
        if self._eof:
            return None
        try:
            chunk = await self._chunks.__anext__()
        except StopAsyncIteration:
            self.logger.debug("Stream exhausted in state %s", self.state.name)
            self._eof = True
            return None
        return chunk

    async def _fill(self) -> bool:
        """Appends the next chunk to the buffer.  Returns False at the end of
        the stream.
        """
        chunk = await self._read_chunk()
        if chunk is None:
            return False
        self.buffer.append(chunk)
        return True

    def _pull(self, length: int) -> bytes:
        data = self.buffer.pull(length)
        self._offset += length
        return data

    def _transition(self, state: MultipartState) -> None:
        self.logger.debug("Moving from %s to %s", self.state.name, state.name)
        self.state = state

    def _fail(self, exc_class: type[MultipartParseError], msg: str) -> NoReturn:
        self.logger.warning(msg)
        e = exc_class(msg)
        e.offset = max(self._offset, 0)
        raise e

    def _safe_length(self) -> int:
        """Returns how many bytes at the front of the buffer cannot be part
        of a divider.  Only called when the buffer holds no full divider, so
        the rest can at most be an incomplete divider cut off at the end of
        the data received so far.
        """
        length = len(self.buffer)
        pos = self.buffer.index_of(CR, max(length - len(self.divider) + 1, 0))
        while pos != -1:
            if self.divider.startswith(self.buffer.peek(pos)):
                return pos
            pos = self.buffer.index_of(CR, pos + 1)
        return length

    async def _choose_delimiter(self) -> None:
        # The divider is at the front of the buffer.  It is the closer if the
        # next two bytes are "--", so make sure they have arrived.
        while len(self.buffer) < len(self.closer):
            if not await self._fill():
                break

        if self.buffer.startswith(self.closer):
            self._transition(MultipartState.SECTION_CLOSER)
        else:
            self._transition(MultipartState.SECTION_DIVIDER)

    async def _complete_part(self) -> None:
        part = self.current_part
        if part is None:
            return

        try:
            completed = part.finalize()
        except MalformedPartError as e:
            self.logger.warning(str(e))
            e.offset = max(self._offset, 0)
            raise

        self.logger.debug("Calling on_part with part %r (%d bytes)", completed.name, len(completed.body))
        result = self.on_part(completed)
        if inspect.isawaitable(result):
            await result

    async def _step_preamble(self) -> None:
        pos = self.buffer.index_of(self.divider)
        if pos != -1:
            self._pull(pos)
            await self._choose_delimiter()
            return

        self._pull(self._safe_length())
        if not await self._fill():
            self._fail(MalformedStreamError, "Stream ended before the first boundary was found")

    async def _step_section_divider(self) -> None:
        divider = self._pull(len(self.divider))
        if divider != self.divider:
            self._fail(MultipartParseError, "Expected boundary %r, found %r" % (self.divider, divider))

        await self._complete_part()
        self.current_part = CurrentPart()
        self._transition(MultipartState.SECTION_DIVIDER_BODY)

    async def _step_section_divider_body(self) -> None:
        pos = self.buffer.index_of(CRLF)
        if pos != -1:
            padding = self._pull(pos)
            if padding.strip(SPACE):
                self._fail(MalformedPartError, "Unexpected data after boundary: %r" % padding)
            self._pull(len(CRLF))
            self._transition(MultipartState.SECTION_HEADER)
            return

        if not await self._fill():
            self._fail(MalformedStreamError, "Stream ended inside a boundary line")

    async def _step_section_header(self) -> None:
        assert self.current_part is not None

        # A part with no headers at all.
        if self.buffer.startswith(CRLF):
            self._pull(len(CRLF))
            self._transition(MultipartState.BODY)
            return

        pos = self.buffer.index_of(HEADER_END)
        if pos == -1:
            if not await self._fill():
                self._fail(MalformedStreamError, "Stream ended inside the headers of a part")
            return

        block = self._pull(pos)
        self._pull(len(HEADER_END))
        self._parse_headers(block, self.current_part)
        self._transition(MultipartState.BODY)

    def _parse_headers(self, block: bytes, part: CurrentPart) -> None:
        for line in block.decode("utf-8", "replace").split("\r\n"):
            header_name, sep, value = line.partition(":")
            if not sep:
                self.logger.debug("Ignoring header line without a colon: %r", line)
                continue

            header_name = header_name.strip().lower()
            if header_name == "content-disposition":
                items = parse_header_value(value.strip())
                if not items or items[0].value.lower() != "form-data":
                    self.logger.debug("Ignoring Content-Disposition: %r", value)
                    continue

                params = items[0].params
                if "name" in params:
                    part.name = params["name"]
                if "filename" in params:
                    part.filename = params["filename"]

            elif header_name == "content-type":
                items = parse_header_value(value.strip())
                if items:
                    part.content_type = items[0].value

            else:
                self.logger.debug("Ignoring header: %r", header_name)

    async def _step_body(self) -> None:
        assert self.current_part is not None

        pos = self.buffer.index_of(self.divider)
        if pos != -1:
            self.current_part.body.append(self._pull(pos))
            await self._choose_delimiter()
            return

        self.current_part.body.append(self._pull(self._safe_length()))
        if not await self._fill():
            self._fail(MalformedStreamError, "Stream ended inside the body of part %r" % self.current_part.name)

    async def _step_section_closer(self) -> None:
        closer = self._pull(len(self.closer))
        if closer != self.closer:
            self._fail(MultipartParseError, "Expected closing boundary %r, found %r" % (self.closer, closer))

        await self._complete_part()
        self.current_part = None
        self._transition(MultipartState.EPILOGUE)

    async def _step_epilogue(self) -> None:
        # Anything after the closing boundary is ignored.
        discarded = len(self.buffer)
        self.buffer.clear()
        while True:
            chunk = await self._read_chunk()
            if chunk is None:
                break
            discarded += len(chunk)

        if discarded:
            self.logger.debug("Discarded %d bytes after the closing boundary", discarded)
        self._finished = True

    def __repr__(self) -> str:
        return "%s(boundary=%r, state=%s)" % (self.__class__.__name__, self.boundary, self.state.name)
