"""Tests for interactive parameter resolution."""

from __future__ import annotations

from nativelink.model import Param
from nativelink.params import ParamPrompter, ask_stdin


def test_asks_once_per_name():
    asked = []

    def ask(param):
        asked.append(param.name)
        return f"value-{param.name}"

    prompter = ParamPrompter(ask)
    key = Param("apiKey", "API key?")
    assert prompter.resolve([key]) == {"apiKey": "value-apiKey"}
    assert prompter.resolve([key, Param("host", "Host?")]) == {
        "apiKey": "value-apiKey",
        "host": "value-host",
    }
    assert asked == ["apiKey", "host"]


def test_non_interactive_uses_defaults():
    def ask(param):
        raise AssertionError("must not prompt")

    prompter = ParamPrompter(ask, interactive=False)
    assert prompter.resolve([Param("a", default="1"), Param("b")]) == {"a": "1", "b": ""}


def test_ask_stdin_default_on_empty_answer(monkeypatch):
    monkeypatch.setattr("builtins.input", lambda prompt: "  ")
    assert ask_stdin(Param("a", "A?", default="x")) == "x"


def test_ask_stdin_eof_uses_default(monkeypatch):
    def eof(prompt):
        raise EOFError

    monkeypatch.setattr("builtins.input", eof)
    assert ask_stdin(Param("a", "A?", default="x")) == "x"
    assert ask_stdin(Param("b", "B?")) == ""


def test_param_from_dict():
    param = Param.from_dict({"name": "apiKey", "default": 42})
    assert param == Param("apiKey", "apiKey", "42")
