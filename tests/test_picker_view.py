"""Tests for the terminal key reader."""

import os

import pytest

from oken.cli.picker_view import read_event
from oken.picker import Backspace, Cancel, Char, Confirm, Down, Up


@pytest.fixture
def keys():
    """Pipe standing in for the tty: yields (write, read_fd)."""
    read_fd, write_fd = os.pipe()

    def write(data: bytes):
        os.write(write_fd, data)

    yield write, read_fd
    os.close(read_fd)
    os.close(write_fd)


class TestReadEvent:
    """Key translation"""

    @pytest.mark.parametrize(
        "data, event",
        [
            (b"\r", Confirm()),
            (b"\x7f", Backspace()),
            (b"\x03", Cancel()),
            (b"a", Char("a")),
            ("é".encode(), Char("é")),
            (b"\x1b[A", Up()),
            (b"\x1bOB", Down()),
        ],
    )
    def test_keys(self, keys, data, event):
        write, fd = keys
        write(data)

        assert read_event(fd) == event

    def test_lone_escape_cancels(self, keys):
        write, fd = keys
        write(b"\x1b")

        assert read_event(fd) == Cancel()

    def test_arrow_split_across_reads(self, keys, monkeypatch):
        """The sequence tail may trickle in one byte at a time"""
        write, fd = keys
        write(b"\x1b[")
        real_read = os.read
        calls = []

        def read_one_then_feed(fd_, n):
            data = real_read(fd_, min(n, 1))
            calls.append(data)
            if data == b"[":
                write(b"B")
            return data

        monkeypatch.setattr("oken.cli.picker_view.os.read", read_one_then_feed)

        assert read_event(fd) == Down()
        assert calls == [b"\x1b", b"[", b"B"]

    def test_unknown_sequence_is_ignored(self, keys):
        write, fd = keys
        write(b"\x1b[Z")

        assert read_event(fd) is None

