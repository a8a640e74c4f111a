#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
replace-strings: simultaneous literal multi-pattern substitution

- Takes from/to pairs on the command line and replaces every occurrence of
  each from-string with its to-string, line by line
- At every position the longest matching from-string wins
  (equal lengths: the pair given first wins)
- Matches never overlap and replaced text is never scanned again
- Empty from-strings are accepted but never match
- No files: reads stdin, writes stdout
- Files (after `--`): each one is streamed into a temporary file next to it
  and swapped into place with a single rename, so a file is never left
  half written

Usage:
  replace-strings [-s] [-v] from to [from to ...] [-- files...]

Exit status: 0 ok, 1 usage or fatal error, 2 one or more files failed.
"""

import argparse
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass
from typing import BinaryIO, Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, TextIO, Tuple

from tqdm import tqdm

__version__ = "1.0"

PROG = "replace-strings"

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_FILES = 2

# Temporary files live next to their target so the final rename never crosses
# a filesystem boundary.
TEMP_PREFIX = ".replace_tmp"

# -------------------------
# Errors
# -------------------------
class ReplaceError(Exception):
    """Base class for everything this tool reports."""

class InvalidArgumentError(ReplaceError, ValueError):
    """Malformed from/to pair list. Fatal, nothing is processed."""

class OutputWriteError(ReplaceError):
    """Standard output could not be written. Fatal, there is no fallback."""

class FileRewriteError(ReplaceError):
    """A single file could not be rewritten; the run goes on with the next one."""

    action = "Failed to process"

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(path, cause)

    def __str__(self) -> str:
        reason = getattr(self.cause, "strerror", None) or self.cause
        if reason:
            return f"{self.action} {self.path}: {reason}"
        return f"{self.action} {self.path}"

class OpenError(FileRewriteError):
    action = "Failed to open file"

class TempCreateError(FileRewriteError):
    action = "Failed to create temporary file for"

class WriteError(FileRewriteError):
    action = "Failed to rewrite"

class CommitError(FileRewriteError):
    action = "Failed to replace"

# -------------------------
# Patterns
# -------------------------
@dataclass(frozen=True)
class ReplacementPair:
    pattern: bytes        # from-string (str works too, as long as lines are str)
    replacement: bytes    # to-string, may be empty (deletion)

class PatternSet:
    """
    Ordered from/to pairs, longest pattern first.

    The sort is stable, so among patterns of the same length the one declared
    first stays first and wins a tie. Non-empty patterns are also indexed by
    their first element; each bucket keeps the sorted order, which makes the
    first matching candidate at a position the longest one.
    """

    def __init__(self, pairs: Iterable[ReplacementPair]):
        ordered = sorted(pairs, key=lambda p: len(p.pattern), reverse=True)
        if not ordered:
            raise InvalidArgumentError("at least one from/to pair is required")
        self.pairs: Tuple[ReplacementPair, ...] = tuple(ordered)
        self.index: Dict[object, List[ReplacementPair]] = {}
        for pair in self.pairs:
            if pair.pattern:
                self.index.setdefault(pair.pattern[0], []).append(pair)

    @classmethod
    def from_args(cls, args: Sequence) -> "PatternSet":
        """Build from a flat `from to from to ...` list."""
        args = list(args)
        if len(args) < 2 or len(args) % 2:
            raise InvalidArgumentError("replace strings must be in from/to pairs")
        return cls(ReplacementPair(args[i], args[i + 1]) for i in range(0, len(args), 2))

    def candidates(self, head) -> List[ReplacementPair]:
        return self.index.get(head, [])

    def __iter__(self) -> Iterator[ReplacementPair]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

# -------------------------
# Line transformation
# -------------------------
class Step(NamedTuple):
    consumed: bytes   # slice of the input line
    emitted: bytes    # what goes to the output for it
    matched: bool

class TransformResult(NamedTuple):
    text: bytes
    changed: bool     # a pattern matched, even if the replacement is identical

def scan(line, patterns: PatternSet) -> Iterator[Step]:
    """
    Walk `line` left to right and yield one Step per decision.

    Unmatched characters are grouped into a single copy step. The `consumed`
    parts concatenate back to `line` exactly.
    """
    pos = 0
    run_start = 0
    end = len(line)
    while pos < end:
        for pair in patterns.candidates(line[pos]):
            if line.startswith(pair.pattern, pos):
                if run_start < pos:
                    copied = line[run_start:pos]
                    yield Step(copied, copied, False)
                yield Step(pair.pattern, pair.replacement, True)
                pos += len(pair.pattern)
                run_start = pos
                break
        else:
            pos += 1
    if run_start < end:
        copied = line[run_start:]
        yield Step(copied, copied, False)

def transform_line(line, patterns: PatternSet) -> TransformResult:
    pieces = []
    changed = False
    for step in scan(line, patterns):
        pieces.append(step.emitted)
        changed = changed or step.matched
    return TransformResult(line[:0].join(pieces), changed)

# -------------------------
# Streams
# -------------------------
def split_line_ending(raw):
    """Split off a trailing newline. A preceding \\r stays in the body."""
    newline = b"\n" if isinstance(raw, bytes) else "\n"
    if raw.endswith(newline):
        return raw[:-1], raw[-1:]
    return raw, raw[:0]

def process_stream(src: Iterable, dst, patterns: PatternSet,
                   on_change: Optional[Callable] = None) -> bool:
    """Transform `src` line by line into `dst`. Returns True if any line changed."""
    any_changed = False
    for raw in src:
        body, ending = split_line_ending(raw)
        result = transform_line(body, patterns)
        out = result.text + ending
        dst.write(out)
        if result.changed:
            any_changed = True
            if on_change is not None:
                on_change(out)
    return any_changed

# -------------------------
# Atomic file rewrite
# -------------------------
def create_temp(path: str) -> Tuple[str, BinaryIO]:
    """Create a uniquely named temporary file beside `path`, opened for binary writing."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=directory)
    try:
        return tmp_path, os.fdopen(fd, "wb")
    except BaseException:
        os.close(fd)
        discard(tmp_path)
        raise

def discard(tmp_path: str) -> None:
    try:
        os.remove(tmp_path)
    except FileNotFoundError:
        pass

def commit(tmp_path: str, path: str) -> None:
    """Swap the finished temporary file into place. The rename is the only commit point."""
    try:
        shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except OSError as e:
        raise CommitError(path, e) from e

def rewrite_file(path: str, patterns: PatternSet,
                 on_change: Optional[Callable] = None) -> bool:
    """
    Rewrite `path` in place through a temporary file.

    On any failure the temporary file is removed and `path` is left exactly as
    it was. Returns True if any line changed.
    """
    try:
        src = open(path, "rb")
    except OSError as e:
        raise OpenError(path, e) from e

    with src:
        try:
            tmp_path, dst = create_temp(path)
        except OSError as e:
            raise TempCreateError(path, e) from e
        try:
            try:
                with dst:
                    changed = process_stream(src, dst, patterns, on_change)
            except OSError as e:
                raise WriteError(path, e) from e
        except BaseException:
            discard(tmp_path)
            raise

    # source must be closed before the rename
    try:
        commit(tmp_path, path)
    except BaseException:
        discard(tmp_path)
        raise
    return changed

# -------------------------
# Reporting
# -------------------------
@dataclass
class ReplaceOptions:
    silent: bool = False
    verbose: bool = False

def show(text) -> str:
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return text

class Reporter:
    """
    Status output. By default only errors are printed; verbose mode adds the
    pair list, every changed line and each converted file. Silent mode wins
    over verbose. `stream` is None for stdout.
    """

    def __init__(self, options: ReplaceOptions, stream: Optional[TextIO] = None):
        self.options = options
        self.stream = stream

    def info(self, msg: str) -> None:
        if not self.options.silent:
            print(msg, file=self.stream or sys.stdout)

    def detail(self, msg: str) -> None:
        if self.options.verbose:
            self.info(msg)

    def error(self, msg: str) -> None:
        print(f"Error: {msg}", file=sys.stderr)

    def pairs(self, patterns: PatternSet) -> None:
        self.detail("Replacement pairs:")
        for pair in patterns:
            self.detail(f"  '{show(pair.pattern)}' -> '{show(pair.replacement)}'")

    def changed_line(self, line) -> None:
        if self.options.verbose and not self.options.silent:
            self.info(f"Replaced in line: {show(split_line_ending(line)[0])}")

# -------------------------
# Drivers
# -------------------------
def run_files(files: Sequence[str], patterns: PatternSet, reporter: Reporter) -> int:
    """Rewrite each file in order. Returns the number of files that failed."""
    failures = 0
    quiet = reporter.options.silent or len(files) < 2
    for path in tqdm(files, desc="Replacing", unit="file", disable=quiet):
        try:
            rewrite_file(path, patterns, on_change=reporter.changed_line)
        except FileRewriteError as e:
            reporter.error(str(e))
            failures += 1
            continue
        reporter.detail(f"{path} converted")
    return failures

def run_stdin(patterns: PatternSet, reporter: Reporter,
              src: Optional[BinaryIO] = None, dst: Optional[BinaryIO] = None) -> bool:
    src = sys.stdin.buffer if src is None else src
    dst = sys.stdout.buffer if dst is None else dst
    try:
        changed = process_stream(src, dst, patterns, on_change=reporter.changed_line)
        dst.flush()
    except OSError as e:
        raise OutputWriteError(f"writing to output failed: {e.strerror or e}") from e
    return changed

# -------------------------
# CLI
# -------------------------
class ArgumentParser(argparse.ArgumentParser):
    # argparse exits with 2 on bad usage; 2 is reserved for file failures
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")

def build_parser() -> ArgumentParser:
    ap = ArgumentParser(
        prog=PROG,
        usage="%(prog)s [-s] [-v] from to [from to ...] [-- files...]",
        description="Replace strings in files or from stdin to stdout.",
        add_help=False,
    )
    ap.add_argument("pairs", nargs="*", metavar="from to", help="Literal from/to string pairs")
    ap.add_argument("-s", "--silent", action="store_true", help="Silent mode. Suppress non-error messages.")
    ap.add_argument("-v", "--verbose", action="store_true", help="Verbose mode. Output information about processing.")
    ap.add_argument("-?", "-h", "--help", action="help", help="Display this help information.")
    ap.add_argument("-V", "--version", action="version", version=f"%(prog)s version {__version__}",
                    help="Display version information.")
    return ap

def split_files(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Everything after the first `--` is a file path."""
    argv = list(argv)
    if "--" in argv:
        i = argv.index("--")
        return argv[:i], argv[i + 1:]
    return argv, []

def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    head, files = split_files(argv)
    ap = build_parser()
    args = ap.parse_intermixed_args(head)
    options = ReplaceOptions(silent=args.silent, verbose=args.verbose)

    try:
        patterns = PatternSet.from_args([os.fsencode(a) for a in args.pairs])
    except InvalidArgumentError as e:
        print(f"Error: {str(e).capitalize()}.", file=sys.stderr)
        ap.print_usage(sys.stderr)
        return EXIT_USAGE

    # status must not interleave with transformed text on stdout
    reporter = Reporter(options, stream=None if files else sys.stderr)
    reporter.pairs(patterns)

    try:
        if files:
            failures = run_files(files, patterns, reporter)
            return EXIT_FILES if failures else EXIT_OK
        run_stdin(patterns, reporter)
    except OutputWriteError as e:
        reporter.error(str(e))
        return EXIT_USAGE
    except MemoryError:
        reporter.error("Memory allocation failed")
        return EXIT_USAGE
    return EXIT_OK

if __name__ == "__main__":
    sys.exit(main())
