from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
import tempfile
from io import BufferedRandom, BytesIO
from typing import TYPE_CHECKING, cast

from .exceptions import FileError, FormParserError
from .headers import get_multipart_type_and_boundary
from .reader import MultipartStreamReader

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Iterator, Mapping
    from typing import Protocol, TypedDict, Union

    from .reader import ByteSource, Part

    class SupportsRead(Protocol):
        def read(self, __n: int) -> bytes: ...

    class FileConfig(TypedDict, total=False):
        UPLOAD_DIR: str | None
        UPLOAD_DELETE_TMP: bool
        UPLOAD_KEEP_FILENAME: bool
        UPLOAD_KEEP_EXTENSIONS: bool
        MAX_MEMORY_FILE_SIZE: int

    class FormDataConfig(FileConfig, total=False):
        DEFAULT_FILE_CONTENT_TYPE: str

    Entry = Union["Field", "File"]
    OnFieldCallback = Callable[["Field"], None]
    OnFileCallback = Callable[["File"], None]

logger = logging.getLogger(__name__)

NOT_FORM_DATA_MSG = "form_data_from_body cannot be called if the content type is not multipart/form-data."
NO_BODY_MSG = "form_data_from_body cannot be called if there is no body."


class Field:
    """
    Object that represents a text form field.  The value is the part body
    decoded as UTF-8.
    """

    def __init__(self, name: str, value: str) -> None:
        self._name = name
        self._value = value

    @classmethod
    def from_part(cls, part: Part) -> Field:
        return cls(part.name, part.body.decode("utf-8", "replace"))

    @property
    def field_name(self) -> str:
        """The name of the form field."""
        return self._name

    @property
    def value(self) -> str:
        """The value of the form field."""
        return self._value

    def close(self) -> None:
        pass

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Field):
            return self.field_name == other.field_name and self.value == other.value
        else:
            return NotImplemented

    def __repr__(self) -> str:
        if len(self.value) > 97:
            # We get the repr, and then insert three dots before the final
            # quote.
            v = repr(self.value[:97])[:-1] + "...'"
        else:
            v = repr(self.value)

        return "%s(field_name=%r, value=%s)" % (self.__class__.__name__, self.field_name, v)


class File:
    """
    This class represents an uploaded file.  It handles writing file data to
    either an in-memory file or a temporary file on-disk, if the optional
    threshold is passed.

    There are some options that can be passed to the File to change behavior
    of the class.  Valid options are as follows:

    .. list-table::
       :widths: 15 5 5 30
       :header-rows: 1

       * - Name
         - Type
         - Default
         - Description
       * - UPLOAD_DIR
         - `str`
         - None
         - The directory to store uploaded files in.  If this is None, a
           temporary file will be created in the system's standard location.
       * - UPLOAD_DELETE_TMP
         - `bool`
         - True
         - Delete automatically created TMP file
       * - UPLOAD_KEEP_FILENAME
         - `bool`
         - False
         - Whether or not to keep the filename of the uploaded file.  If True,
           then the filename will be converted to a safe representation (e.g.
           by removing any invalid path segments), and then saved with the
           same name).  Otherwise, a temporary name will be used.
       * - UPLOAD_KEEP_EXTENSIONS
         - `bool`
         - False
         - Whether or not to keep the uploaded file's extension.  If False,
           the file will be saved with the default temporary extension
           (usually ".tmp").  Otherwise, the file's extension will be
           maintained.
       * - MAX_MEMORY_FILE_SIZE
         - `int`
         - 1 MiB
         - The maximum number of bytes of a File to keep in memory.  By
           default, the contents of a File are kept into memory until a
           certain limit is reached, after which the contents of the File
           are written to a temporary file.  This behavior can be disabled
           by setting this value to an appropriately large value (or, for
           example, infinity, such as `float('inf')`.

    :param file_name: The name of the file that this :class:`File`
                      represents.

    :param field_name: The name of the form field that this file was
                       uploaded with.

    :param content_type: The content type of the uploaded file.

    :param config: The configuration for this File.  See above for valid
                   configuration keys and their corresponding values.
    """

    def __init__(
        self,
        file_name: str,
        field_name: str | None = None,
        content_type: str | None = None,
        config: FileConfig = {},
    ) -> None:
        self.logger = logging.getLogger(__name__)
        self._config = config
        self._in_memory = True
        self._bytes_written = 0
        self._fileobj: BytesIO | BufferedRandom = BytesIO()

        self._field_name = field_name
        self._file_name = file_name
        self._content_type = content_type
        self._actual_file_name: str | None = None

        # Only the last path segment is ever used on disk.
        base, ext = os.path.splitext(os.path.basename(file_name))
        self._file_base = base
        self._ext = ext

    @classmethod
    def from_part(cls, part: Part, content_type: str, config: FileConfig = {}) -> File:
        assert part.filename is not None
        f = cls(part.filename, part.name, part.content_type or content_type, config)
        f.write(part.body)
        f.finalize()
        return f

    @property
    def field_name(self) -> str | None:
        """The form field associated with this file."""
        return self._field_name

    @property
    def file_name(self) -> str:
        """The file name given in the upload request."""
        return self._file_name

    @property
    def content_type(self) -> str | None:
        """The Content-Type of the uploaded file."""
        return self._content_type

    @property
    def actual_file_name(self) -> str | None:
        """The file name that this file is saved as.  Will be None if it's
        not currently saved on disk.
        """
        return self._actual_file_name

    @property
    def file_object(self) -> BytesIO | BufferedRandom:
        """The file object that we're currently writing to.  Note that this
        will either be an instance of a :class:`io.BytesIO`, or a regular file
        object.
        """
        return self._fileobj

    @property
    def size(self) -> int:
        """The total size of this file, counted as the number of bytes that
        currently have been written to the file.
        """
        return self._bytes_written

    @property
    def in_memory(self) -> bool:
        """A boolean representing whether or not this file object is
        currently stored in-memory or on-disk.
        """
        return self._in_memory

    def read(self) -> bytes:
        """Returns the whole content of the file."""
        self._fileobj.seek(0)
        return self._fileobj.read()

    def flush_to_disk(self) -> None:
        """If the file is already on-disk, do nothing.  Otherwise, copy from
        the in-memory buffer to a disk file, and then reassign our internal
        file object to this new disk file.

        Note that if you attempt to flush a file that is already on-disk, a
        warning will be logged to this module's logger.
        """
        if not self._in_memory:
            self.logger.warning("Trying to flush to disk when we're not in memory")
            return

        # Go back to the start of our file.
        self._fileobj.seek(0)

        # Open a new file.
        new_file = self._get_disk_file()

        # Copy the file objects.
        shutil.copyfileobj(self._fileobj, new_file)

        # Seek to the new position in our new file.
        new_file.seek(self._bytes_written)

        # Reassign the fileobject.
        old_fileobj = self._fileobj
        self._fileobj = new_file

        # We're no longer in memory.
        self._in_memory = False

        # Close the old file object.
        old_fileobj.close()

    def _get_disk_file(self) -> BufferedRandom:
        """This function is responsible for getting a file object on-disk for us."""
        self.logger.info("Opening a file on disk")

        file_dir = self._config.get("UPLOAD_DIR")
        keep_filename = self._config.get("UPLOAD_KEEP_FILENAME", False)
        keep_extensions = self._config.get("UPLOAD_KEEP_EXTENSIONS", False)
        delete_tmp = self._config.get("UPLOAD_DELETE_TMP", True)
        tmp_file: None | BufferedRandom = None

        # If we have a directory and are to keep the filename...
        if file_dir is not None and keep_filename:
            self.logger.info("Saving with filename in: %r", file_dir)

            # Build our filename.
            fname = self._file_base + self._ext if keep_extensions else self._file_base
            path = os.path.join(file_dir, fname)
            try:
                self.logger.info("Opening file: %r", path)
                tmp_file = open(path, "w+b")
            except OSError:
                self.logger.exception("Error opening temporary file")
                raise FileError("Error opening temporary file: %r" % path)
        else:
            suffix = self._ext if keep_extensions else None

            self.logger.info(
                "Creating a temporary file with options: %r", {"suffix": suffix, "delete": delete_tmp, "dir": file_dir}
            )
            try:
                tmp_file = cast(BufferedRandom, tempfile.NamedTemporaryFile(suffix=suffix, delete=delete_tmp, dir=file_dir))
            except OSError:
                self.logger.exception("Error creating named temporary file")
                raise FileError("Error creating named temporary file")

            fname = tmp_file.name
            if isinstance(fname, bytes):  # pragma: no cover
                fname = fname.decode(sys.getfilesystemencoding())

        self._actual_file_name = fname
        return tmp_file

    def write(self, data: bytes) -> int:
        """Write some data to the File.

        :param data: a bytestring
        """
        bwritten = self._fileobj.write(data)
        if bwritten != len(data):
            self.logger.warning("bwritten != len(data) (%d != %d)", bwritten, len(data))
            return bwritten

        self._bytes_written += bwritten

        # If we're in-memory and are over our limit, we create a file.
        max_memory_file_size = self._config.get("MAX_MEMORY_FILE_SIZE")
        if self._in_memory and max_memory_file_size is not None and (self._bytes_written > max_memory_file_size):
            self.logger.info("Flushing to disk")
            self.flush_to_disk()

        return bwritten

    def finalize(self) -> None:
        """Finalize the form file.  This will not close the underlying file,
        but simply signal that we are finished writing to the File.
        """
        self._fileobj.flush()

    def close(self) -> None:
        """Close the File object.  This will actually close the underlying
        file object (whether it's a :class:`io.BytesIO` or an actual file
        object).
        """
        self._fileobj.close()

    def __repr__(self) -> str:
        return "%s(file_name=%r, field_name=%r, content_type=%r)" % (
            self.__class__.__name__,
            self.file_name,
            self.field_name,
            self.content_type,
        )


class FormData:
    """
    An ordered collection of the fields and files of a multipart/form-data
    body.  A name may appear more than once.
    """

    #: This is the default configuration for our form data.
    #: Note: all file sizes should be in bytes.
    DEFAULT_CONFIG: FormDataConfig = {
        "MAX_MEMORY_FILE_SIZE": 1 * 1024 * 1024,
        "UPLOAD_DIR": None,
        "UPLOAD_KEEP_FILENAME": False,
        "UPLOAD_KEEP_EXTENSIONS": False,
        "UPLOAD_DELETE_TMP": True,
        # Content type of uploaded files that did not declare one.
        "DEFAULT_FILE_CONTENT_TYPE": "text/plain",
    }

    def __init__(self, config: FormDataConfig | None = None) -> None:
        self.config: FormDataConfig = self.DEFAULT_CONFIG.copy()
        if config:
            self.config.update(config)
        self._entries: list[tuple[str, Entry]] = []

    def append(self, name: str, value: Entry) -> None:
        self._entries.append((name, value))

    def add_part(self, part: Part) -> Entry:
        """Turns a part into a :class:`File` if it carries a filename, and
        into a :class:`Field` otherwise, and appends it.
        """
        entry: Entry
        if part.filename is not None:
            entry = File.from_part(part, self.config["DEFAULT_FILE_CONTENT_TYPE"], self.config)
        else:
            entry = Field.from_part(part)
        self.append(part.name, entry)
        return entry

    def get(self, name: str, default: Entry | None = None) -> Entry | None:
        """Returns the first entry with the given name."""
        for key, value in self._entries:
            if key == name:
                return value
        return default

    def get_all(self, name: str) -> list[Entry]:
        return [value for key, value in self._entries if key == name]

    def keys(self) -> list[str]:
        return [key for key, _ in self._entries]

    def items(self) -> list[tuple[str, Entry]]:
        return list(self._entries)

    def close(self) -> None:
        """Closes every file in the form."""
        for _, value in self._entries:
            value.close()

    def __contains__(self, name: object) -> bool:
        return any(key == name for key, _ in self._entries)

    def __iter__(self) -> Iterator[tuple[str, Entry]]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return "%s(%r)" % (self.__class__.__name__, self._entries)


def _get_header(headers: Mapping[str, str | bytes], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        lower = name.lower()
        for key, v in headers.items():
            if key.lower() == lower:
                value = v
                break

    if isinstance(value, bytes):
        value = value.decode("latin-1")
    return value


async def _read_form(
    headers: Mapping[str, str | bytes],
    body: ByteSource | None,
    config: FormDataConfig | None,
    on_field: OnFieldCallback | None = None,
    on_file: OnFileCallback | None = None,
) -> FormData:
    content_type = _get_header(headers, "Content-Type")
    multipart_type = get_multipart_type_and_boundary(content_type) if content_type is not None else None
    if multipart_type is None or multipart_type.type != "form-data":
        logger.warning("Unsupported Content-Type: %r", content_type)
        raise FormParserError(NOT_FORM_DATA_MSG)

    if body is None:
        logger.warning("No body given")
        raise FormParserError(NO_BODY_MSG)

    form = FormData(config)

    def on_part(part: Part) -> None:
        entry = form.add_part(part)
        if isinstance(entry, File):
            if on_file is not None:
                on_file(entry)
        elif on_field is not None:
            on_field(entry)

    reader = MultipartStreamReader(body, multipart_type.boundary, on_part)
    try:
        await reader.perform_work()
    except BaseException:
        form.close()
        raise

    return form


async def form_data_from_body(
    headers: Mapping[str, str | bytes],
    body: ByteSource | None,
    config: FormDataConfig | None = None,
) -> FormData:
    """
    Reads a multipart/form-data body into a :class:`FormData`.

    :param headers: The request or response headers.  Must contain a
                    ``Content-Type`` of ``multipart/form-data`` with a
                    boundary; lookup is case-insensitive.

    :param body: The body as any byte source accepted by
                 :class:`~multipart_reader.reader.MultipartStreamReader`.

    :param config: Overrides for :attr:`FormData.DEFAULT_CONFIG`.
    """
    return await _read_form(headers, body, config)


def _iter_stream(input_stream: SupportsRead, content_length: int | float, chunk_size: int) -> Iterator[bytes]:
    bytes_read = 0

    while True:
        # Read only up to the Content-Length given.
        max_readable = int(min(content_length - bytes_read, chunk_size))
        buff = input_stream.read(max_readable)

        if buff:
            yield buff
        bytes_read += len(buff)

        if len(buff) != max_readable or bytes_read == content_length:
            break


def parse_form(
    headers: Mapping[str, str | bytes],
    input_stream: SupportsRead,
    on_field: OnFieldCallback | None = None,
    on_file: OnFileCallback | None = None,
    chunk_size: int = 1048576,
    config: FormDataConfig | None = None,
) -> FormData:
    """
    This function is useful if you just want to parse a request body,
    without too much work.  Pass it a dictionary-like object of the request's
    headers, and a file-like object for the input stream, along with two
    optional callbacks that will get called whenever a field or file is
    parsed.

    It runs its own event loop, so it must not be called from a coroutine;
    use :func:`form_data_from_body` there instead.

    :param headers: A dictionary-like object of HTTP headers.  The only
                    required header is Content-Type.

    :param input_stream: A file-like object that represents the request body.
                         The read() method must return bytestrings.

    :param on_field: Callback to call with each parsed field.

    :param on_file: Callback to call with each parsed file.

    :param chunk_size: The maximum size to read from the input stream and
                       write to the parser at one time.  Defaults to 1 MiB.
    """
    # Read chunks of 1MiB and write to the parser, but never read more than
    # the given Content-Length, if any.
    content_length: int | float | str | bytes | None = _get_header(headers, "Content-Length")
    if content_length is not None:
        content_length = int(content_length)
    else:
        content_length = float("inf")

    chunks = _iter_stream(input_stream, content_length, chunk_size)
    return asyncio.run(_read_form(headers, chunks, config, on_field, on_file))
