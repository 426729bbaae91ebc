"""Tests for CLI output helpers."""

import json

from gitkv.cli._database import parse_cli_value
from gitkv.cli._output import print_error, print_object, print_value, to_document
from gitkv.types import ABSENT, Blob


def test_print_object_json(capsys):
    print_object({"key": "val"}, json_mode=True)
    out = capsys.readouterr().out
    assert json.loads(out) == {"key": "val"}


def test_print_object_text_with_list(capsys):
    print_object({"links": ["a", "b"], "n": 1}, json_mode=False)
    out = capsys.readouterr().out
    assert "links:\n  a\n  b\n" in out
    assert "n: 1" in out


def test_print_error(capsys):
    print_error("boom")
    assert capsys.readouterr().err == "Error: boom\n"


def test_print_value_formats(capsys):
    print_value({"a": [1]}, fmt="json")
    assert json.loads(capsys.readouterr().out) == {"a": [1]}
    print_value({"a": [1]}, fmt="yaml")
    assert capsys.readouterr().out == "a:\n- 1\n"
    print_value("plain", fmt="text")
    assert capsys.readouterr().out == "plain\n"


def test_to_document():
    assert to_document(ABSENT) is None
    assert to_document(b"\x01\xff") == "01ff"
    assert to_document(Blob(b"abc", "text/plain")) == {"mime_type": "text/plain", "size": 3}


def test_parse_cli_value():
    assert parse_cli_value("12") == 12
    assert parse_cli_value('{"a": 1}') == {"a": 1}
    assert parse_cli_value("hello") == "hello"
    assert parse_cli_value("12", raw=True) == "12"
