"""Unit tests for :mod:`tessera.entrypoints.cli.helpers.messages`.

Covered behaviors:

1) Glyph selection follows the encoding of the stream Click reports for
   stderr, re-checked on every call.
2) ``warn``/``success``/``error`` write styled lines to stderr only, so the
   per-unit report on stdout stays machine-readable.
"""

import io

import click
import pytest
from click.testing import CliRunner

from tessera.entrypoints.cli.helpers.messages import (
    _glyph,
    _supports_character,
    caution_glyph,
    error,
    error_glyph,
    success,
    success_glyph,
    warn,
)

# pylint: disable=redefined-outer-name

SET_BOLD = "\x1b[1m"
RESET = "\x1b[0m"


class EncodedStream(io.StringIO):
    """A text stream declaring an arbitrary encoding."""

    def __init__(self, encoding: str | None):
        super().__init__()
        self._encoding = encoding

    @property
    def encoding(self):
        """Declared character encoding, possibly None."""
        return self._encoding


@pytest.fixture
def stderr_encoding(monkeypatch):
    """Return a setter pointing Click's stderr probe at a given encoding."""

    def _set(encoding):
        monkeypatch.setattr(click, "get_text_stream", lambda name: EncodedStream(encoding))

    return _set


@pytest.mark.parametrize(
    ("encoding", "expected"),
    [
        ("ascii", ("[!]", "[OK]", "[X]")),
        ("latin-1", ("[!]", "[OK]", "[X]")),
        (None, ("[!]", "[OK]", "[X]")),
        ("utf-8", ("⚠️", "✅", "❌")),
    ],
)
def test_glyphs_follow_stderr_encoding(stderr_encoding, encoding, expected):
    """Emoji are used only when stderr can encode them; no encoding means ASCII."""
    stderr_encoding(encoding)
    assert (caution_glyph(), success_glyph(), error_glyph()) == expected


def test_encoding_checked_on_every_call(stderr_encoding):
    """Switching the stream's encoding changes the very next answer."""
    stderr_encoding("ascii")
    assert _supports_character("✅") is False
    assert _glyph("✅", "[OK]") == "[OK]"
    stderr_encoding("utf-8")
    assert _supports_character("✅") is True


@pytest.mark.parametrize(
    ("func", "color_code"),
    [(warn, "\x1b[33m"), (success, "\x1b[32m"), (error, "\x1b[31m")],
)
def test_messages_are_styled_and_on_stderr(func, color_code):
    """Each emitter writes one bold, colored line to stderr and nothing to stdout."""

    @click.command()
    def emit():
        func("2 passed, 1 failed")

    result = CliRunner().invoke(emit, color=True)
    assert result.exit_code == 0
    assert result.stdout == ""
    assert "2 passed, 1 failed" in result.stderr
    assert SET_BOLD in result.stderr
    assert color_code in result.stderr
    assert result.stderr.rstrip("\n").endswith(RESET)
