"""
Tests for label loading.
"""

import logging

import pytest

from guidance_detector.errors import LabelLoadFailure
from guidance_detector.labels import class_name, load_labels, parse_labels, read_labels


def test_parse_keeps_empty_lines():
    """Empty lines are literal labels; indices do not shift."""
    assert parse_labels("person\n\ncar\n") == ("person", "", "car")


def test_parse_handles_crlf():
    assert parse_labels("a\r\nb\r\n") == ("a", "b")


def test_load_from_file(tmp_path):
    """Test reading a newline-delimited label file."""
    path = tmp_path / "labels.txt"
    path.write_text("person\nbicycle\ncar\n", encoding="utf-8")

    assert load_labels(path) == ("person", "bicycle", "car")
    assert load_labels(str(path)) == ("person", "bicycle", "car")


def test_load_from_bytes_and_sequence():
    assert load_labels(b"cat\ndog") == ("cat", "dog")
    assert load_labels(["cat", "dog"]) == ("cat", "dog")
    assert load_labels(None) == ()


def test_missing_file_is_not_fatal(tmp_path, caplog):
    """A missing label file logs a warning and yields an empty table."""
    with caplog.at_level(logging.WARNING):
        labels = load_labels(tmp_path / "missing.txt")

    assert labels == ()
    assert "Continuing without labels" in caplog.text


def test_read_labels_raises(tmp_path):
    """The strict reader surfaces LabelLoadFailure."""
    with pytest.raises(LabelLoadFailure):
        read_labels(tmp_path / "missing.txt")
    with pytest.raises(LabelLoadFailure):
        read_labels(b"\xff\xfe\xfa")


def test_class_name_fallback():
    labels = ("person", "car")
    assert class_name(labels, 1) == "car"
    assert class_name(labels, 2) == "Unknown_2"
    assert class_name((), 0) == "Unknown_0"
