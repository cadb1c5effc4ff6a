"""Tests for Request, Response and HttpMethod."""

import unittest
from unittest.mock import MagicMock

import requests
from urllib3 import HTTPHeaderDict

from conduit import ConfigurationError, DecodeError, HttpMethod, Request, Response


class TestHttpMethod(unittest.TestCase):
    def test_parse_is_case_insensitive(self):
        self.assertIs(HttpMethod.parse("get"), HttpMethod.GET)
        self.assertIs(HttpMethod.parse(HttpMethod.DELETE), HttpMethod.DELETE)

    def test_parse_rejects_unknown_methods(self):
        with self.assertRaises(ConfigurationError):
            HttpMethod.parse("HEAD")

    def test_str_value(self):
        self.assertEqual(str(HttpMethod.PATCH), "PATCH")


class TestRequest(unittest.TestCase):
    def test_create_normalizes_inputs(self):
        request = Request.create("post", "https://x.test/a")

        self.assertIs(request.method, HttpMethod.POST)
        self.assertEqual(request.data, {})
        self.assertEqual(request.headers, {})

    def test_empty_uri_is_rejected(self):
        with self.assertRaises(AssertionError):
            Request.create("GET", "")

    def test_with_methods_return_new_instances(self):
        original = Request.create("GET", "https://x.test/a", data={"a": 1}, headers={"X-A": "1"})

        changed = original.with_uri("https://x.test/b").with_data({"b": 2}).with_header("X-B", "2")

        self.assertEqual(original.uri, "https://x.test/a")
        self.assertEqual(original.data, {"a": 1})
        self.assertEqual(original.headers, {"X-A": "1"})
        self.assertEqual(changed.uri, "https://x.test/b")
        self.assertEqual(changed.data, {"b": 2})
        self.assertEqual(changed.headers, {"X-A": "1", "X-B": "2"})

    def test_with_headers_merges_over_existing(self):
        request = Request.create("GET", "https://x.test", headers={"Accept": "a", "X-A": "1"})

        merged = request.with_headers({"Accept": "b"})

        self.assertEqual(merged.headers, {"Accept": "b", "X-A": "1"})

    def test_header_lookup_is_case_insensitive(self):
        request = Request.create("GET", "https://x.test", headers={"Content-Type": "text/plain"})

        self.assertEqual(request.header("content-type"), "text/plain")
        self.assertIsNone(request.header("Accept"))

    def test_is_frozen(self):
        request = Request.create("GET", "https://x.test")
        with self.assertRaises(AttributeError):
            request.uri = "https://y.test"  # type: ignore


class TestResponse(unittest.TestCase):
    def test_build_defaults_reason_phrase(self):
        self.assertEqual(Response.build(404).reason_phrase, "Not Found")
        self.assertEqual(Response.build(799).reason_phrase, "Unknown")
        self.assertEqual(Response.build(200, reason_phrase="Fine").reason_phrase, "Fine")

    def test_build_encodes_text_body(self):
        self.assertEqual(Response.build(200, body="olá").body, "olá".encode())

    def test_headers_are_case_insensitive_lists(self):
        response = Response.build(200, {"Set-Cookie": ["a=1", "b=2"], "Content-Type": "application/json"})

        self.assertTrue(response.has_header("set-cookie"))
        self.assertEqual(response.header("SET-COOKIE"), ["a=1", "b=2"])
        self.assertEqual(response.header_line("set-cookie"), "a=1, b=2")
        self.assertEqual(response.header("X-Missing"), [])
        self.assertEqual(response.header_line("X-Missing"), "")

    def test_with_header_replaces_values(self):
        response = Response.build(200, {"X-A": "1"})

        changed = response.with_header("x-a", ["2", "3"])

        self.assertEqual(response.header("X-A"), ["1"])
        self.assertEqual(changed.header("X-A"), ["2", "3"])

    def test_is_success(self):
        self.assertTrue(Response.build(204).is_success)
        self.assertFalse(Response.build(304).is_success)
        self.assertFalse(Response.build(199).is_success)

    def test_json(self):
        self.assertEqual(Response.build(200, body='{"a": [1]}').json(), {"a": [1]})
        self.assertIsNone(Response.build(200).json())
        with self.assertRaises(DecodeError):
            Response.build(200, body="{oops").json()

    def test_decode_error_is_a_value_error(self):
        with self.assertRaises(ValueError):
            Response.build(200, body="nope").json()

    def test_from_requests_keeps_repeated_headers(self):
        raw = MagicMock()
        raw.headers = HTTPHeaderDict()
        raw.headers.add("Set-Cookie", "a=1; Path=/")
        raw.headers.add("Set-Cookie", "b=2; Path=/")
        raw.headers.add("Content-Type", "text/plain")

        http_response = requests.Response()
        http_response.status_code = 200
        http_response.reason = "OK"
        http_response._content = b"hi"
        http_response.raw = raw

        response = Response.from_requests(http_response)

        self.assertEqual(response.header("set-cookie"), ["a=1; Path=/", "b=2; Path=/"])
        self.assertEqual(response.header_line("content-type"), "text/plain")
        self.assertEqual(response.text, "hi")
        self.assertEqual(response.reason_phrase, "OK")
