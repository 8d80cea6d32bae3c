#!/usr/bin/env python3
"""
Stamp the release version into the generated version header.

Reads MAJOR.MINOR.PATCH from the first line of _RELEASE_ and rewrites the
BRICKSTORE_MAJOR / BRICKSTORE_MINOR / BRICKSTORE_PATCH defines of
version.h.in into version.h.

Usage examples:
  python update_version.py
  python update_version.py --release-file _RELEASE_ --template version.h.in --output version.h
"""

from __future__ import annotations

import argparse
import io
import re
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import ContextManager, Iterable, Iterator, NamedTuple, TextIO

RELEASE_FILE = "_RELEASE_"
TEMPLATE_FILE = "version.h.in"
OUTPUT_FILE = "version.h"

# (^#define NAME<ws>)<value>(<ws>)$ -- only the value token is replaced
MAJOR_RE = re.compile(r"^(#define BRICKSTORE_MAJOR[ \t]+)\S*([ \t]*)$")
MINOR_RE = re.compile(r"^(#define BRICKSTORE_MINOR[ \t]+)\S*([ \t]*)$")
PATCH_RE = re.compile(r"^(#define BRICKSTORE_PATCH[ \t]+)\S*([ \t]*)$")


class ResourceUnavailable(Exception):
    """The file access facility could not be set up."""

    errno = 1


class ReleaseVersion(NamedTuple):
    major: str
    minor: str
    patch: str


class FileSystem:
    """Reader/writer pair the stamper does all of its file access through."""

    def open_reader(self, path) -> ContextManager[TextIO]:
        raise NotImplementedError

    def open_writer(self, path) -> ContextManager[TextIO]:
        raise NotImplementedError


class LocalFileSystem(FileSystem):
    def __init__(self, encoding: str = "latin-1"):
        self.encoding = encoding

    # latin-1 is byte-transparent; newline="" keeps \r\n intact
    def open_reader(self, path) -> ContextManager[TextIO]:
        return open(path, "r", encoding=self.encoding, newline="")

    def open_writer(self, path) -> ContextManager[TextIO]:
        return open(path, "w", encoding=self.encoding, newline="")


class MemoryFileSystem(FileSystem):
    """Keeps files as strings in `files`, keyed by str(path)."""

    def __init__(self, files: dict[str, str] | None = None):
        self.files = dict(files or {})

    def open_reader(self, path) -> ContextManager[TextIO]:
        key = str(path)
        if key not in self.files:
            raise FileNotFoundError(2, "No such file or directory", key)
        return io.StringIO(self.files[key], newline="")

    @contextmanager
    def open_writer(self, path) -> ContextManager[TextIO]:
        buf = io.StringIO(newline="")
        try:
            yield buf
        finally:
            # partial output stays behind on failure, same as a real file
            self.files[str(path)] = buf.getvalue()


def create_file_system() -> FileSystem:
    try:
        return LocalFileSystem()
    except Exception as e:
        raise ResourceUnavailable(f"Could not create file system access: {e}") from e


def parse_release(text: str) -> ReleaseVersion:
    """
    Split the first line of `text` into (major, minor, patch).

    Extra segments are ignored and missing ones become "", so "2.3" gives
    ("2", "3", "") rather than an error.
    """
    lines = text.splitlines()
    first = lines[0].strip() if lines else ""
    parts = first.split(".")[:3]
    parts += [""] * (3 - len(parts))
    return ReleaseVersion(*parts)


def _split_eol(line: str) -> tuple[str, str]:
    if line.endswith("\r\n"):
        return line[:-2], "\r\n"
    if line.endswith(("\n", "\r")):
        return line[:-1], line[-1]
    return line, ""


def stamp_line(line: str, release: ReleaseVersion) -> str:
    body, eol = _split_eol(line)
    # lambdas so a value like "\1" is inserted literally
    body = MAJOR_RE.sub(lambda m: m.group(1) + release.major + m.group(2), body, count=1)
    body = MINOR_RE.sub(lambda m: m.group(1) + release.minor + m.group(2), body, count=1)
    body = PATCH_RE.sub(lambda m: m.group(1) + release.patch + m.group(2), body, count=1)
    return body + eol


def stamp_lines(lines: Iterable[str], release: ReleaseVersion) -> Iterator[str]:
    for line in lines:
        yield stamp_line(line, release)


def read_release(fs: FileSystem, release_file) -> ReleaseVersion:
    with fs.open_reader(release_file) as f:
        return parse_release(f.readline())


def run(release_file=RELEASE_FILE, template_file=TEMPLATE_FILE, output_file=OUTPUT_FILE,
        fs: FileSystem | None = None) -> ReleaseVersion:
    """
    Stamp `template_file` into `output_file` using the version in `release_file`.

    The template is opened before the output, so a missing template leaves no
    output file behind. Errors propagate to the caller; a failure halfway
    through may leave a partially written output.
    """
    if fs is None:
        fs = create_file_system()

    release = read_release(fs, release_file)

    with fs.open_reader(template_file) as src:
        with fs.open_writer(output_file) as dst:
            for line in stamp_lines(src, release):
                dst.write(line)

    return release


def error_code(e: BaseException) -> int:
    code = getattr(e, "errno", None)
    if not isinstance(code, int):
        return 0
    return code & 0xFFFF


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Stamp the release version into the version header.")
    ap.add_argument("--release-file", default=RELEASE_FILE, help=f"Release marker file (default: {RELEASE_FILE})")
    ap.add_argument("--template", default=TEMPLATE_FILE, help=f"Header template (default: {TEMPLATE_FILE})")
    ap.add_argument("--output", default=OUTPUT_FILE, help=f"Generated header (default: {OUTPUT_FILE})")
    ap.add_argument("--verbose", action="store_true", help="Print the stamped version and output path.")
    args = ap.parse_args(argv)

    try:
        release = run(Path(args.release_file), Path(args.template), Path(args.output))
    except Exception as e:
        description = e.strerror if isinstance(e, OSError) and e.strerror else str(e)
        if isinstance(e, OSError) and e.filename:
            description = f"{description}: '{e.filename}'"
        print(f"An error occurred: {description} (#{error_code(e)})", file=sys.stderr)
        return 1

    if args.verbose:
        print("+", ".".join(release), "->", args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
