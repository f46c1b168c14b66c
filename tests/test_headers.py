from __future__ import annotations

import unittest

from multipart_reader.headers import (
    HeaderItem,
    MultipartType,
    get_multipart_type_and_boundary,
    parse_header_value,
    parse_options_header,
)


class TestParseOptionsHeader(unittest.TestCase):
    def test_simple(self) -> None:
        t, p = parse_options_header("application/json")
        self.assertEqual(t, "application/json")
        self.assertEqual(p, {})

    def test_blank(self) -> None:
        t, p = parse_options_header("")
        self.assertEqual(t, "")
        self.assertEqual(p, {})

    def test_none(self) -> None:
        t, p = parse_options_header(None)
        self.assertEqual(t, "")
        self.assertEqual(p, {})

    def test_single_param(self) -> None:
        t, p = parse_options_header("application/json;par=val")
        self.assertEqual(t, "application/json")
        self.assertEqual(p, {"par": "val"})

    def test_single_param_with_spaces(self) -> None:
        t, p = parse_options_header(b"application/json;     par=val")
        self.assertEqual(t, "application/json")
        self.assertEqual(p, {"par": "val"})

    def test_multiple_params(self) -> None:
        t, p = parse_options_header(b"application/json;par=val;asdf=foo")
        self.assertEqual(t, "application/json")
        self.assertEqual(p, {"par": "val", "asdf": "foo"})

    def test_type_is_lowercased(self) -> None:
        t, p = parse_options_header("Multipart/Form-Data; Boundary=XyZ")
        self.assertEqual(t, "multipart/form-data")
        self.assertEqual(p, {"boundary": "XyZ"})

    def test_quoted_param(self) -> None:
        t, p = parse_options_header(b'application/json;param="quoted"')
        self.assertEqual(t, "application/json")
        self.assertEqual(p, {"param": "quoted"})

    def test_quoted_param_with_semicolon(self) -> None:
        t, p = parse_options_header(b'application/json;param="quoted;with;semicolons"')
        self.assertEqual(p["param"], "quoted;with;semicolons")

    def test_quoted_param_with_escapes(self) -> None:
        t, p = parse_options_header(b'application/json;param="This \\" is \\" a \\" quote"')
        self.assertEqual(p["param"], 'This " is " a " quote')

    def test_handles_ie6_bug(self) -> None:
        t, p = parse_options_header(b'text/plain; filename="C:\\this\\is\\a\\path\\file.txt"')
        self.assertEqual(p["filename"], "file.txt")

    def test_handles_escaped_unc_path(self) -> None:
        t, p = parse_options_header(b'text/plain; filename="\\\\\\\\server\\\\share\\\\file.txt"')
        self.assertEqual(p["filename"], "file.txt")

    def test_extended_filename(self) -> None:
        t, p = parse_options_header("form-data; name=f; filename*=UTF-8''caf%C3%A9.txt")
        self.assertEqual(t, "form-data")
        self.assertEqual(p["filename"], "caf\u00e9.txt")

    def test_extended_filename_takes_precedence(self) -> None:
        t, p = parse_options_header("form-data; filename*=UTF-8''a%20b.txt; filename=\"plain.txt\"")
        self.assertEqual(p["filename"], "a b.txt")

        t, p = parse_options_header("form-data; filename=\"plain.txt\"; filename*=UTF-8''a%20b.txt")
        self.assertEqual(p["filename"], "a b.txt")

    def test_extended_unknown_charset(self) -> None:
        t, p = parse_options_header("form-data; filename*=bogus-charset''a%E9.txt")
        self.assertEqual(p["filename"], "a\u00e9.txt")

    def test_only_first_item_is_used(self) -> None:
        t, p = parse_options_header("text/plain; a=1, text/html; b=2")
        self.assertEqual(t, "text/plain")
        self.assertEqual(p, {"a": "1"})

    def test_segment_without_equals_is_ignored(self) -> None:
        t, p = parse_options_header("form-data; flag; name=x")
        self.assertEqual(p, {"name": "x"})


class TestParseHeaderValue(unittest.TestCase):
    def test_multiple_items(self) -> None:
        items = parse_header_value('a; x=1, b; y="2,3"')
        self.assertEqual(items, [HeaderItem("a", {"x": "1"}), HeaderItem("b", {"y": "2,3"})])

    def test_quote_inside_token_is_literal(self) -> None:
        items = parse_header_value('form-data; filename=a"b; name=c')
        self.assertEqual(items, [HeaderItem("form-data", {"filename": 'a"b', "name": "c"})])

    def test_quote_inside_token_does_not_join_items(self) -> None:
        items = parse_header_value('a; x=1"2, b; y=3')
        self.assertEqual(items, [HeaderItem("a", {"x": '1"2'}), HeaderItem("b", {"y": "3"})])

    def test_quoted_value_after_whitespace(self) -> None:
        items = parse_header_value('form-data; name = "a;b" ; filename= "c.txt"')
        self.assertEqual(items[0].params, {"name": "a;b", "filename": "c.txt"})

    def test_empty_items_are_skipped(self) -> None:
        self.assertEqual(parse_header_value(" , ,"), [])

    def test_bytes_are_decoded_as_latin1(self) -> None:
        items = parse_header_value(b'form-data; name="\xe9"')
        self.assertEqual(items[0].params["name"], "\u00e9")

    def test_param_names_are_lowercased(self) -> None:
        items = parse_header_value("form-data; NAME=field; FileName=a.txt")
        self.assertEqual(items[0].params, {"name": "field", "filename": "a.txt"})

    def test_primary_case_is_kept(self) -> None:
        items = parse_header_value("Form-Data; name=x")
        self.assertEqual(items[0].value, "Form-Data")


class TestGetMultipartTypeAndBoundary(unittest.TestCase):
    def test_form_data(self) -> None:
        result = get_multipart_type_and_boundary("multipart/form-data; boundary=----WebKitFormBoundaryTkr3kCBQlBe1nrhc")
        self.assertEqual(result, MultipartType("form-data", "----WebKitFormBoundaryTkr3kCBQlBe1nrhc"))

    def test_quoted_boundary(self) -> None:
        result = get_multipart_type_and_boundary('multipart/mixed; boundary="simple boundary"')
        self.assertEqual(result, MultipartType("mixed", "simple boundary"))

    def test_quoted_boundary_keeps_whitespace(self) -> None:
        result = get_multipart_type_and_boundary('multipart/form-data; boundary=" a  "')
        self.assertEqual(result, MultipartType("form-data", " a  "))

    def test_bytes_header(self) -> None:
        result = get_multipart_type_and_boundary(b"multipart/form-data; boundary=abc")
        self.assertEqual(result, MultipartType("form-data", "abc"))

    def test_not_multipart(self) -> None:
        self.assertIsNone(get_multipart_type_and_boundary("application/json; boundary=abc"))
        self.assertIsNone(get_multipart_type_and_boundary("text/plain"))

    def test_missing_boundary(self) -> None:
        self.assertIsNone(get_multipart_type_and_boundary("multipart/form-data"))
        self.assertIsNone(get_multipart_type_and_boundary('multipart/form-data; boundary=""'))

    def test_empty(self) -> None:
        self.assertIsNone(get_multipart_type_and_boundary(""))
        self.assertIsNone(get_multipart_type_and_boundary(None))
