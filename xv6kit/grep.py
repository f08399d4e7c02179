"""A small grep supporting the ^ . * $ operators."""

from __future__ import annotations

import sys
from typing import BinaryIO, Iterator

_BUFSIZE = 1024


def match(regex: str, text: str) -> bool:
    """Search for ``regex`` anywhere in ``text``."""
    if regex.startswith("^"):
        return _match_here(regex[1:], text)
    return any(_match_here(regex, text[i:]) for i in range(len(text) + 1))


def _match_here(regex: str, text: str) -> bool:
    while True:
        if not regex:
            return True
        if len(regex) > 1 and regex[1] == "*":
            return _match_star(regex[0], regex[2:], text)
        if regex == "$":
            return not text
        if text and (regex[0] == "." or regex[0] == text[0]):
            regex, text = regex[1:], text[1:]
            continue
        return False


def _match_star(c: str, regex: str, text: str) -> bool:
    i = 0
    while True:
        if _match_here(regex, text[i:]):
            return True
        if i < len(text) and (text[i] == c or c == "."):
            i += 1
        else:
            return False


def _as_text(line: bytes) -> str:
    return line.split(b"\0", 1)[0].decode("latin-1")


def grep(pattern: str, stream: BinaryIO) -> Iterator[bytes]:
    """Yield each newline-terminated line of ``stream`` that matches.

    Input is read through a fixed 1024-byte buffer: a read that leaves the
    buffer without any newline is discarded, and a final unterminated line
    is never reported.
    """
    pending = b""
    while True:
        chunk = stream.read(_BUFSIZE - len(pending) - 1)
        if not chunk:
            break
        *lines, rest = (pending + chunk).split(b"\n")
        for line in lines:
            if match(pattern, _as_text(line)):
                yield line + b"\n"
        pending = rest if lines else b""


def _emit(data: bytes) -> None:
    sys.stdout.flush()
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, paths = args[0], args[1:]
    if not paths:
        for line in grep(pattern, sys.stdin.buffer):
            _emit(line)
        return 0
    for path in paths:
        try:
            handle = open(path, "rb")
        except OSError:
            print(f"grep: cannot open {path}", flush=True)
            return 1
        with handle:
            for line in grep(pattern, handle):
                _emit(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())