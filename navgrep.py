"""
navgrep: an interactive, recursive content search for the terminal.

Matches show up while the directory walk is still running. A match can be opened in
an editor, and the visible results can be narrowed with a nested search ("/"), which
pushes a new result set that "q" pops again.

Run as `python navgrep.py pattern [path]` (or the `navgrep` console script).
"""

import os
import sys
import re
import json
import shlex
import threading
import subprocess
import logging
import argparse
import curses
from dataclasses import dataclass, field
from enum import Enum

__all__ = ["main", "__version__"]
__version__ = "0.1.0"

logger = logging.getLogger("navgrep")
logger.addHandler(logging.NullHandler())
logger.propagate = False

LINE_MAX = 256
INITIAL_CAPACITY = 100
GROWTH_INCREMENT = 500
SUBSEARCH_GROWTH = 100
RESERVED_DIRS = frozenset({".", "..", ".git", ".svn", ".hg", ".bzr", "CVS"})
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


# ---------- Errors ----------
class NavgrepError(Exception):
    """Base class for errors reported to the user."""


class ConfigError(NavgrepError):
    pass


class PatternError(NavgrepError):
    pass


class WalkerError(NavgrepError):
    pass


# ---------- Utilities ----------
def collapse_slashes(path: str) -> str:
    return re.sub(r"/{2,}", "/", path)


def display_path(path: str, root: str) -> str:
    # "./src/a.c" reads as "src/a.c" when searching the current directory
    if os.path.normpath(root) == "." and path.startswith("./"):
        path = path[2:]
    return collapse_slashes(path)


def strip_line_ending(line: str) -> str:
    """Drop the trailing "\\n" and at most one "\\r" before it."""
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


def printable(text: str) -> str:
    # lone surrogates from undecodable bytes cannot be drawn
    return text.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def split_words(value) -> list[str]:
    if isinstance(value, str):
        return value.split()
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return []


# ---------- Entries ----------
@dataclass(frozen=True)
class FileHeader:
    path: str


@dataclass(frozen=True)
class MatchLine:
    line_number: int
    text: str

    def encoded(self) -> str:
        return f"{self.line_number}:{self.text}"


# ---------- Filter Policy ----------
@dataclass(frozen=True)
class FilterPolicy:
    excludes: frozenset = frozenset()
    extensions: tuple = ()
    specific_files: frozenset = frozenset()
    follow_symlinks: bool = False
    raw: bool = False

    @classmethod
    def build(cls, *, excludes=(), extensions=(), specific_files=(), follow_symlinks=False, raw=False):
        return cls(
            excludes=frozenset(os.path.normpath(e) for e in excludes if e),
            extensions=tuple(dict.fromkeys(e for e in extensions if e)),
            specific_files=frozenset(s for s in specific_files if s),
            follow_symlinks=bool(follow_symlinks),
            raw=bool(raw),
        )

    def should_descend(self, path: str, root: str | None = None) -> bool:
        name = os.path.basename(path.rstrip("/")) or path
        if name in RESERVED_DIRS:
            return False
        if not self.excludes:
            return True
        candidates = {name, os.path.normpath(path)}
        if root is not None:
            try:
                candidates.add(os.path.relpath(path, root))
            except ValueError:
                pass
        return candidates.isdisjoint(self.excludes)

    def should_scan(self, path: str) -> bool:
        if self.raw:
            return True
        if os.path.basename(path) in self.specific_files:
            return True
        return any(path.endswith(ext) for ext in self.extensions)

    def allows_link(self, path: str) -> bool:
        return self.follow_symlinks or not os.path.islink(path)


# ---------- Line Matcher ----------
class MatchKind(Enum):
    PLAIN = "plain"
    IGNORE_CASE = "ignore-case"
    REGEX = "regex"


class LineMatcher:
    def __init__(self, pattern: str, kind: MatchKind = MatchKind.PLAIN, *, ignore_case: bool = False):
        self.pattern = pattern
        self.kind = kind
        self.regex: re.Pattern | None = None
        self._needle = pattern.lower() if kind is MatchKind.IGNORE_CASE else pattern
        if kind is MatchKind.REGEX:
            try:
                self.regex = re.compile(pattern, re.IGNORECASE if ignore_case else 0)
            except re.error as e:
                raise PatternError(f"invalid regular expression {pattern!r}: {e}") from e

    def matches(self, line: str) -> bool:
        if self.regex is not None:
            return self.regex.search(line) is not None
        if self.kind is MatchKind.IGNORE_CASE:
            return self._needle in line.lower()
        return self._needle in line

    def __repr__(self):
        return f"LineMatcher({self.pattern!r}, {self.kind.name})"


def compile_matcher(pattern: str, *, ignore_case: bool = False, regex: bool = False) -> LineMatcher:
    if regex:
        return LineMatcher(pattern, MatchKind.REGEX, ignore_case=ignore_case)
    if ignore_case:
        return LineMatcher(pattern, MatchKind.IGNORE_CASE)
    return LineMatcher(pattern, MatchKind.PLAIN)


# ---------- Result Buffer ----------
class ResultBuffer:
    """
    Append-only sequence of FileHeader / MatchLine entries shared between a producer
    (the walker or the subsearch builder) and the UI.

    Storage is preallocated and grows by a fixed increment whenever it is full. Every
    method takes ``lock``; callers that need several reads to agree (count, then rows)
    hold ``lock`` around the whole sequence. The lock is reentrant.
    """

    def __init__(self, capacity: int = INITIAL_CAPACITY, growth: int = GROWTH_INCREMENT):
        if capacity < 0 or growth < 1:
            raise ValueError("capacity must be >= 0 and growth >= 1")
        self.lock = threading.RLock()
        self.growth = growth
        self.match_count = 0
        self.released = False
        self._slots: list = [None] * capacity
        self._count = 0

    @property
    def capacity(self) -> int:
        with self.lock:
            return len(self._slots)

    def __len__(self):
        with self.lock:
            return self._count

    def __getitem__(self, index: int):
        with self.lock:
            if index < 0:
                index += self._count
            if not 0 <= index < self._count:
                raise IndexError("entry index out of range")
            return self._slots[index]

    def __iter__(self):
        return iter(self.snapshot())

    def _push(self, entry) -> None:
        if self._count >= len(self._slots):
            self._slots.extend([None] * self.growth)
        self._slots[self._count] = entry
        self._count += 1

    def append_file(self, path: str) -> None:
        with self.lock:
            if self.released:
                return
            self._push(FileHeader(path))

    def append_match(self, line_number: int, text: str) -> None:
        with self.lock:
            if self.released:
                return
            self._push(MatchLine(line_number, text))
            self.match_count += 1

    def append_first_match(self, path: str, line_number: int, text: str) -> None:
        """Append a file header together with its first match in one critical section."""
        with self.lock:
            self.append_file(path)
            self.append_match(line_number, text)

    def is_file(self, index: int) -> bool:
        with self.lock:
            return 0 <= index < self._count and isinstance(self._slots[index], FileHeader)

    def owner(self, index: int) -> FileHeader | None:
        with self.lock:
            index = min(index, self._count - 1)
            while index >= 0:
                entry = self._slots[index]
                if isinstance(entry, FileHeader):
                    return entry
                index -= 1
            return None

    def slice(self, start: int, stop: int) -> list:
        with self.lock:
            return self._slots[max(start, 0):min(stop, self._count)]

    def snapshot(self) -> list:
        with self.lock:
            return self._slots[:self._count]

    def compact(self) -> None:
        with self.lock:
            del self._slots[self._count:]

    def release(self) -> None:
        with self.lock:
            self._slots = []
            self._count = 0
            self.match_count = 0
            self.released = True


# ---------- Search Context ----------
@dataclass
class SearchContext:
    pattern: str
    matcher: LineMatcher
    root: str = "."
    raw: bool = False
    buffer: ResultBuffer = field(default_factory=ResultBuffer)

    # navigation
    offset: int = 0
    cursor: int = 0

    # runtime
    live: bool = False
    error: BaseException | None = None

    @classmethod
    def primary(cls, pattern: str, root: str = ".", *, ignore_case=False, regex=False, raw=False):
        return cls(
            pattern=pattern,
            matcher=compile_matcher(pattern, ignore_case=ignore_case, regex=regex),
            root=root,
            raw=raw,
            buffer=ResultBuffer(INITIAL_CAPACITY, GROWTH_INCREMENT),
        )

    @property
    def kind(self) -> MatchKind:
        return self.matcher.kind

    @property
    def regex(self) -> re.Pattern | None:
        return self.matcher.regex

    # ---------- Navigation ----------
    def _clamp(self, height: int, count: int) -> None:
        self.offset = min(max(self.offset, 0), count - 1)
        self.cursor = min(max(self.cursor, 0), min(height, count - self.offset) - 1)

    def _settle(self, height: int, forward: bool = True) -> None:
        count = len(self.buffer)
        if count == 0:
            self.offset = self.cursor = 0
            return
        self._clamp(height, count)
        index = self.offset + self.cursor
        if not self.buffer.is_file(index):
            return

        # headers are never selectable; take the neighbouring match row,
        # preferring one already on the page
        order = (index + 1, index - 1) if forward else (index - 1, index + 1)
        targets = [t for t in order if 0 <= t < count and not self.buffer.is_file(t)]
        if not targets:
            return
        on_page = [t for t in targets if self.offset <= t < self.offset + height]
        target = on_page[0] if on_page else targets[0]
        if target < self.offset:
            self.offset = target
        elif target >= self.offset + height:
            self.offset = target - height + 1
        self.cursor = target - self.offset

    def line_down(self, height: int) -> None:
        height = max(height, 1)
        with self.buffer.lock:
            count = len(self.buffer)
            if count == 0:
                return
            self._clamp(height, count)
            if self.cursor == height - 1:
                self.page_down(height)
                return
            if self.offset + self.cursor < count - 1:
                self.cursor += 1
            if self.buffer.is_file(self.offset + self.cursor):
                self.cursor += 1
            if self.cursor > height - 1:
                self.page_down(height)
                return
            self._settle(height)

    def line_up(self, height: int) -> None:
        height = max(height, 1)
        with self.buffer.lock:
            count = len(self.buffer)
            if count == 0:
                return
            self._clamp(height, count)
            if self.cursor == 0:
                self.page_up(height)
                return
            self.cursor -= 1
            if self.buffer.is_file(self.offset + self.cursor):
                self.cursor -= 1
            if self.cursor < 0:
                self.page_up(height)
                return
            self._settle(height, forward=False)

    def page_down(self, height: int) -> None:
        height = max(height, 1)
        with self.buffer.lock:
            count = len(self.buffer)
            if count == 0:
                return
            self._clamp(height, count)
            if count % height == 0:
                max_offset = count - height
            else:
                max_offset = count - count % height

            if self.offset + height >= count:
                # last page already on screen: go to the last entry
                self.cursor = count - 1 - self.offset
            else:
                new_offset = min(self.offset + height, max_offset)
                # first row below the old page
                self.cursor = self.offset + height - new_offset
                self.offset = new_offset
            self._settle(height, forward=True)

    def page_up(self, height: int) -> None:
        height = max(height, 1)
        with self.buffer.lock:
            count = len(self.buffer)
            if count == 0:
                return
            self._clamp(height, count)
            if self.offset == 0:
                self.cursor = 0
                self._settle(height, forward=True)
                return
            new_offset = max(self.offset - height, 0)
            # last row above the old page
            self.cursor = min(self.offset - 1 - new_offset, height - 1)
            self.offset = new_offset
            self._settle(height, forward=False)

    def resize(self, height: int) -> None:
        with self.buffer.lock:
            self._settle(max(height, 1))

    def visible(self, height: int) -> list[tuple[object, bool]]:
        with self.buffer.lock:
            rows = self.buffer.slice(self.offset, self.offset + height)
            return [(entry, row == self.cursor) for row, entry in enumerate(rows)]

    def selection(self) -> tuple[FileHeader, MatchLine] | None:
        with self.buffer.lock:
            index = self.offset + self.cursor
            if not 0 <= index < len(self.buffer) or self.buffer.is_file(index):
                return None
            header = self.buffer.owner(index)
            if header is None:
                return None
            return header, self.buffer[index]


# ---------- Walker ----------
class Walker:
    """Depth-first content search that feeds a context's buffer."""

    def __init__(self, context: SearchContext, policy: FilterPolicy):
        self.context = context
        self.policy = policy
        self._seen: set[str] = set()

    def run(self) -> None:
        ctx = self.context
        logger.info("Search started: %r in %s", ctx.pattern, ctx.root)
        try:
            if os.path.isfile(ctx.root):
                if self.policy.should_scan(ctx.root):
                    self.scan_file(ctx.root)
                else:
                    logger.info("Not a searched file type: %s", ctx.root)
            else:
                self.walk_directory(ctx.root)
        except Exception as e:
            ctx.error = e
            logger.error("Search aborted in %s: %s", ctx.root, e, exc_info=True)
        finally:
            ctx.live = False
        logger.info("Search finished: %d hits", ctx.buffer.match_count)

    def _on_walk_error(self, err: OSError) -> None:
        logger.debug("Skipping directory %s: %s", err.filename, err)

    def walk_directory(self, top: str) -> None:
        policy = self.policy
        if policy.follow_symlinks:
            self._seen.add(os.path.realpath(top))
        for root, dirs, files in os.walk(top, followlinks=policy.follow_symlinks, onerror=self._on_walk_error):
            kept = []
            for d in dirs:
                path = os.path.join(root, d)
                if not policy.should_descend(path, root=top):
                    continue
                if not policy.follow_symlinks:
                    if os.path.islink(path):
                        logger.debug("Skipping symlinked directory %s", path)
                        continue
                else:
                    # each real directory is walked once, whichever name reaches it first
                    real = os.path.realpath(path)
                    if real in self._seen:
                        logger.debug("Skipping already visited directory %s", path)
                        continue
                    self._seen.add(real)
                kept.append(d)
            dirs[:] = kept

            for name in files:
                path = os.path.join(root, name)
                if not policy.allows_link(path):
                    logger.debug("Skipping symlink %s", path)
                    continue
                if not policy.should_scan(path):
                    continue
                # fifos, sockets, devices, dangling links
                if not os.path.isfile(path):
                    continue
                self.scan_file(path)

    def scan_file(self, path: str) -> None:
        matcher = self.context.matcher
        buffer = self.context.buffer
        found = False
        try:
            # only "\n" ends a line; undecodable bytes are kept as surrogates
            with open(path, "r", encoding="utf-8", errors="surrogateescape", newline="\n") as f:
                for number, line in enumerate(f, 1):
                    line = strip_line_ending(line)[:LINE_MAX]
                    if not matcher.matches(line):
                        continue
                    if found:
                        buffer.append_match(number, line)
                    else:
                        buffer.append_first_match(path, number, line)
                        found = True
        except OSError as e:
            logger.debug("Skipping %s: %s", path, e)


# ---------- Subsearch ----------
def subsearch(parent: SearchContext, pattern: str) -> SearchContext:
    """Filter the parent's current entries by ``pattern`` (a regular expression).

    The pattern is matched against the line text alone, without the "<n>:" line
    number prefix, so a pattern such as ``^12:`` finds nothing.

    Raises PatternError for an invalid pattern. A header is only copied once one of
    its lines matches, so the child never holds a header without matches.
    """
    matcher = compile_matcher(pattern, regex=True)
    child = SearchContext(
        pattern=pattern,
        matcher=matcher,
        root=parent.root,
        buffer=ResultBuffer(INITIAL_CAPACITY, SUBSEARCH_GROWTH),
    )

    pending: FileHeader | None = None
    for entry in parent.buffer.snapshot():
        if isinstance(entry, FileHeader):
            pending = entry
            continue
        if not matcher.matches(entry.text):
            continue
        if pending is not None:
            child.buffer.append_file(pending.path)
            pending = None
        child.buffer.append_match(entry.line_number, entry.text)

    child.buffer.compact()
    return child


# ---------- Session ----------
class Session:
    """The stack of searches: the primary search at the bottom, the current one on top."""

    def __init__(self, primary: SearchContext, policy: FilterPolicy):
        self.policy = policy
        self.stack: list[SearchContext] = [primary]
        self._thread: threading.Thread | None = None

    @property
    def primary(self) -> SearchContext:
        return self.stack[0]

    @property
    def current(self) -> SearchContext:
        return self.stack[-1]

    @property
    def parent(self) -> SearchContext | None:
        return self.stack[-2] if len(self.stack) > 1 else None

    def start(self) -> threading.Thread:
        primary = self.primary
        primary.live = True
        worker = threading.Thread(target=Walker(primary, self.policy).run, name="navgrep-walker", daemon=True)
        try:
            worker.start()
        except RuntimeError:
            primary.live = False
            raise
        self._thread = worker
        return worker

    def wait(self, timeout: float | None = None) -> bool:
        if self._thread is not None:
            self._thread.join(timeout)
        return not self.primary.live

    def check(self) -> None:
        error = self.primary.error
        if error is not None:
            raise WalkerError(f"search failed: {error}") from error

    def push_subsearch(self, pattern: str) -> SearchContext | None:
        if not pattern:
            return None
        child = subsearch(self.current, pattern)
        self.stack.append(child)
        logger.info("Subsearch %r: %d hits (depth %d)", pattern, child.buffer.match_count, len(self.stack) - 1)
        return child

    def pop_current(self) -> bool:
        """Drop the current subsearch. Returns False when only the primary is left."""
        if len(self.stack) == 1:
            return False
        self.stack.pop().buffer.release()
        logger.info("Back to %r", self.current.pattern)
        return True

    def teardown_all(self) -> None:
        while self.stack:
            self.stack.pop().buffer.release()


# ---------- Settings ----------
@dataclass(frozen=True)
class Settings:
    editor: str
    specific_files: tuple = ()
    extensions: tuple = ()
    log_file: str | None = None


def settings_paths() -> list[str]:
    paths = []
    override = os.getenv("NAVGREP_CONFIG")
    if override:
        paths.append(override)
    base = os.getenv("APPDATA") or os.path.expanduser("~")
    paths.append(os.path.join(base, "navgrep", "settings.json"))
    paths.append(os.path.join(os.sep, "etc", "navgrep", "settings.json"))
    return paths


def parse_settings(data, source: str = "settings") -> Settings:
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: expected a JSON object")
    for key in ("editor", "files", "extensions"):
        if key not in data:
            raise ConfigError(f"{source}: no {key} setting found")
    editor = data["editor"]
    if not isinstance(editor, str) or not editor.strip():
        raise ConfigError(f"{source}: editor must be a non-empty string")
    build_editor_command(editor, line=1, path="file", pattern="pattern")
    log_file = data.get("log_file") or None
    return Settings(
        editor=editor,
        specific_files=tuple(split_words(data["files"])),
        extensions=tuple(split_words(data["extensions"])),
        log_file=str(log_file) if log_file else None,
    )


def load_settings(paths=None) -> Settings:
    paths = settings_paths() if paths is None else list(paths)
    for path in paths:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            continue
        except (OSError, ValueError) as e:
            raise ConfigError(f"cannot read {path}: {e}") from e
        return parse_settings(data, path)
    raise ConfigError("no settings file found (looked in: " + ", ".join(paths) + ")")


def configure_logging(log_file: str | None, level: int = logging.DEBUG) -> logging.Handler | None:
    if not log_file:
        return None
    try:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot open log file {log_file}: {e}") from e
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.setLevel(level)
    logger.addHandler(handler)
    return handler


# ---------- Editor ----------
def build_editor_command(template: str, *, line: int, path: str, pattern: str) -> list[str]:
    """Expand ``{line}``, ``{file}`` and ``{pattern}`` in each word of the template."""
    try:
        words = shlex.split(template)
    except ValueError as e:
        raise ConfigError(f"invalid editor command {template!r}: {e}") from e
    if not words:
        raise ConfigError("editor command is empty")
    values = {"line": line, "file": collapse_slashes(path), "pattern": pattern}
    try:
        return [w.format(**values) for w in words]
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigError(f"invalid editor command {template!r}: {e}") from e


def open_in_editor(template: str, *, line: int, path: str, pattern: str) -> int:
    argv = build_editor_command(template, line=line, path=path, pattern=pattern)
    logger.info("Opening editor: %s", shlex.join(argv))
    return subprocess.call(argv)


# ---------- Interface ----------
KEYS_LINE_DOWN = (ord("j"), curses.KEY_DOWN)
KEYS_LINE_UP = (ord("k"), curses.KEY_UP)
KEYS_PAGE_DOWN = (ord("J"), curses.KEY_NPAGE)
KEYS_PAGE_UP = (ord("K"), curses.KEY_PPAGE)
KEYS_OPEN = (ord("p"), ord("\n"), curses.KEY_ENTER)
KEY_SUBSEARCH = ord("/")
KEY_QUIT = ord("q")
KEY_ESCAPE = 27
BACKSPACE_KEYS = (curses.KEY_BACKSPACE, 8, 127)
SPINNER = "/-\\|"


def safe_addstr(win, y: int, x: int, text: str, attr: int = 0) -> None:
    try:
        win.addstr(y, x, text, attr)
    except curses.error:
        pass


class Interface:
    """Curses front end: one key (or one idle tick) per loop, then a full redraw."""

    POLL_MS = 50

    def __init__(self, session: Session, editor: str):
        self.session = session
        self.editor = editor
        self.message = ""
        self.stdscr = None
        self._tick = 0
        self._colors = dict(number=0, text=0, file=curses.A_BOLD, error=curses.A_BOLD)

    def run(self, stdscr) -> None:
        self.stdscr = stdscr
        self._setup()
        while True:
            self.session.check()
            primary = self.session.primary
            if not primary.live and len(primary.buffer) == 0:
                break
            self.render()
            key = stdscr.getch()
            if key == -1:
                continue
            if not self.handle_key(key):
                break

    def _setup(self) -> None:
        self.stdscr.keypad(True)
        self.stdscr.timeout(self.POLL_MS)
        try:
            curses.curs_set(0)
        except curses.error:
            pass
        try:
            if not curses.has_colors():
                return
            curses.start_color()
            curses.use_default_colors()
            curses.init_pair(1, -1, -1)
            curses.init_pair(2, curses.COLOR_YELLOW, -1)
            curses.init_pair(3, curses.COLOR_RED, -1)
            curses.init_pair(5, curses.COLOR_GREEN, -1)
        except curses.error:
            return
        self._colors = dict(
            number=curses.color_pair(2),
            text=curses.color_pair(1),
            file=curses.color_pair(5) | curses.A_BOLD,
            error=curses.color_pair(3) | curses.A_BOLD,
        )

    def _height(self) -> int:
        return max(self.stdscr.getmaxyx()[0], 1)

    def handle_key(self, key: int) -> bool:
        """Apply one key to the current context. Returns False to end the session."""
        ctx = self.session.current
        height = self._height()
        self.message = ""
        if key in KEYS_LINE_DOWN:
            ctx.line_down(height)
        elif key in KEYS_LINE_UP:
            ctx.line_up(height)
        elif key in KEYS_PAGE_DOWN:
            ctx.page_down(height)
        elif key in KEYS_PAGE_UP:
            ctx.page_up(height)
        elif key == curses.KEY_RESIZE:
            self.stdscr.clear()
            ctx.resize(height)
        elif key in KEYS_OPEN:
            self.open_selection()
        elif key == KEY_SUBSEARCH:
            self.start_subsearch()
        elif key == KEY_QUIT:
            if not self.session.pop_current():
                return False
            self.stdscr.clear()
        return True

    def open_selection(self) -> None:
        ctx = self.session.current
        selected = ctx.selection()
        if selected is None:
            return
        header, match = selected
        curses.def_prog_mode()
        curses.endwin()
        try:
            open_in_editor(self.editor, line=match.line_number, path=header.path, pattern=ctx.pattern)
        except (OSError, NavgrepError) as e:
            logger.error("Editor failed: %s", e)
            self.message = f"editor: {e}"
        finally:
            curses.reset_prog_mode()
            self.stdscr.clear()
            ctx.resize(self._height())

    def start_subsearch(self) -> None:
        pattern = self.prompt("To search: ")
        self.stdscr.clear()
        try:
            self.session.push_subsearch(pattern)
        except PatternError as e:
            self.message = str(e)

    def prompt(self, label: str) -> str:
        rows, cols = self.stdscr.getmaxyx()
        width = min(50, max(cols, 1))
        win = curses.newwin(3, width, max((rows - 3) // 2, 0), max((cols - width) // 2, 0))
        win.keypad(True)
        text = ""
        while True:
            win.erase()
            win.box()
            shown = (label + text)[-(width - 3):]
            safe_addstr(win, 1, 1, shown)
            win.refresh()
            key = win.getch()
            if key in (ord("\n"), curses.KEY_ENTER):
                break
            if key == KEY_ESCAPE:
                text = ""
                break
            if key in BACKSPACE_KEYS:
                text = text[:-1]
            elif 32 <= key < 256 and len(text) < LINE_MAX:
                text += chr(key)
        del win
        return text

    def render(self) -> None:
        stdscr = self.stdscr
        rows, cols = stdscr.getmaxyx()
        ctx = self.session.current
        stdscr.erase()
        with ctx.buffer.lock:
            ctx.resize(rows)
            for y, (entry, selected) in enumerate(ctx.visible(rows)):
                self._render_entry(y, cols, entry, selected, ctx.root)
            hits = ctx.buffer.match_count
        self._render_status(rows, cols, hits)
        stdscr.refresh()

    def _render_entry(self, y: int, cols: int, entry, selected: bool, root: str) -> None:
        if isinstance(entry, FileHeader):
            safe_addstr(self.stdscr, y, 0, printable(display_path(entry.path, root))[:cols - 1], self._colors["file"])
            return
        reverse = curses.A_REVERSE if selected else 0
        number = f"{entry.line_number}:"
        safe_addstr(self.stdscr, y, 0, number[:cols - 1], self._colors["number"] | reverse)
        if len(number) < cols - 1:
            text = printable(entry.text)[:cols - 1 - len(number)]
            safe_addstr(self.stdscr, y, len(number), text, self._colors["text"] | reverse)

    def _render_status(self, rows: int, cols: int, hits: int) -> None:
        if self.session.primary.live:
            self._tick += 1
            safe_addstr(self.stdscr, 0, max(cols - 1, 0), SPINNER[self._tick % len(SPINNER)])
        else:
            safe_addstr(self.stdscr, 0, max(cols - 5, 0), "Done.")
        label = f"Hits: {hits}"
        safe_addstr(self.stdscr, min(1, rows - 1), max(cols - len(label), 0), label)
        if self.message:
            safe_addstr(self.stdscr, rows - 1, 0, self.message[:cols - 1], self._colors["error"])


# ---------- Main ----------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="navgrep",
        description="Interactive recursive content search.",
    )
    parser.add_argument("-i", dest="ignore_case", action="store_true", help="ignore case distinctions in pattern")
    parser.add_argument("-t", dest="types", action="append", default=[], metavar="EXT",
                        help="also look in files with this extension (repeatable)")
    parser.add_argument("-r", dest="raw", action="store_true", help="raw mode: search every regular file")
    parser.add_argument("-e", dest="regex", action="store_true", help="pattern is a regular expression")
    parser.add_argument("-f", dest="follow_symlinks", action="store_true", help="follow symlinks (default doesn't)")
    parser.add_argument("-x", dest="excludes", action="append", default=[], metavar="DIR",
                        help="exclude directory from search (repeatable)")
    parser.add_argument("--log", metavar="FILE", help="write a debug log to FILE")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("pattern")
    parser.add_argument("path", nargs="?", default=".")
    return parser


def create_session(args: argparse.Namespace, settings: Settings) -> Session:
    extra = [t if t.startswith(".") else "." + t for t in args.types if t]
    policy = FilterPolicy.build(
        excludes=args.excludes,
        extensions=list(settings.extensions) + extra,
        specific_files=settings.specific_files,
        follow_symlinks=args.follow_symlinks,
        raw=args.raw,
    )
    primary = SearchContext.primary(
        args.pattern, args.path, ignore_case=args.ignore_case, regex=args.regex, raw=args.raw
    )
    if not os.path.exists(args.path):
        raise NavgrepError(f"{args.path}: no such file or directory")
    return Session(primary, policy)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
        configure_logging(args.log or settings.log_file)
        session = create_session(args, settings)
    except NavgrepError as e:
        print(f"navgrep: {e}", file=sys.stderr)
        return 1

    try:
        session.start()
    except RuntimeError as e:
        print(f"navgrep: cannot start search: {e}", file=sys.stderr)
        session.teardown_all()
        return 1

    os.environ.setdefault("ESCDELAY", "25")
    try:
        curses.wrapper(Interface(session, settings.editor).run)
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    except WalkerError as e:
        print(f"navgrep: {e}", file=sys.stderr)
        return 1
    finally:
        session.teardown_all()
    return 0


if __name__ == "__main__":
    sys.exit(main())
