class FormParserError(ValueError):
    """Base error class for our form parser."""


class ParseError(FormParserError):
    """This exception (or a subclass) is raised when there is an error while
    parsing something.
    """

    #: This is the offset in the overall stream at which the parse error was
    #: detected.  It will be -1 if not specified.
    offset = -1


class MultipartParseError(ParseError):
    """This is a specific error that is raised when the MultipartStreamReader
    detects an error while parsing.
    """


class MalformedStreamError(MultipartParseError):
    """Raised when the byte source runs out before the closing boundary has
    been seen.
    """


class MalformedPartError(MultipartParseError):
    """Raised when a part is structurally invalid, e.g. garbage after a
    boundary or a part without a field name.
    """


class FileError(FormParserError, OSError):
    """Exception class for problems with the File class."""
