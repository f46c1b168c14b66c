__version__ = "0.1.0"

from .buffer import ByteBuffer
from .exceptions import (
    FileError,
    FormParserError,
    MalformedPartError,
    MalformedStreamError,
    MultipartParseError,
    ParseError,
)
from .form import Field, File, FormData, form_data_from_body, parse_form
from .headers import get_multipart_type_and_boundary, parse_header_value, parse_options_header
from .reader import MultipartState, MultipartStreamReader, Part

__all__ = (
    "ByteBuffer",
    "Field",
    "File",
    "FileError",
    "FormData",
    "FormParserError",
    "MalformedPartError",
    "MalformedStreamError",
    "MultipartParseError",
    "MultipartState",
    "MultipartStreamReader",
    "ParseError",
    "Part",
    "form_data_from_body",
    "get_multipart_type_and_boundary",
    "parse_form",
    "parse_header_value",
    "parse_options_header",
)
