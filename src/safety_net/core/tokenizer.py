"""
Shell-aware tokenizer.

Splits a raw command string into words, assignments, redirects and chain
operators, resolving quotes and backslash escapes the way bash does, without
expanding or executing anything.

The tokenizer never raises. Unterminated quotes, unbalanced substitutions and
trailing backslashes produce a best-effort final token instead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from safety_net.core.bash import is_assignment

TokenKind = Literal["word", "assignment", "redirect", "operator"]

# Longest first so "&&" wins over "&"
OPERATORS = ("&&", "||", "|&", ";;", "|", ";", "&", "(", ")")

REDIRECT_RE = re.compile(r"&>>|&>|\d*(?:<<<|<<-|<<|<>|<&|>>|>&|>\||<|>)")
FD_TARGET_RE = re.compile(r"\d+-?|-")

# Unquoted characters that end a word
WORD_BREAK = frozenset(" \t\n;&|<>()")

# Reserved words after which the next word is still in command position
KEYWORDS = frozenset(
    {"!", "{", "if", "then", "elif", "else", "do", "while", "until", "time"}
)


@dataclass(frozen=True)
class Token:
    """A single shell token.

    ``value`` has quotes removed and escapes resolved; ``raw`` is the exact
    source text between ``start`` and ``end``.
    """

    value: str
    raw: str
    start: int
    end: int
    kind: TokenKind = "word"
    quoted: bool = False
    substitutions: tuple[str, ...] = ()
    """Bodies of $(...), `...`, <(...) and >(...) found in this token."""

    @property
    def is_word(self) -> bool:
        return self.kind == "word"

    def __repr__(self) -> str:
        return f"Token({self.kind}, {self.value!r})"


def tokenize(command: str) -> list[Token]:
    """Split a command string into tokens. Never raises."""
    return _Tokenizer(command).run()


def word_token(value: str) -> Token:
    """Build a synthetic word token, used when a command arrives as a word list."""
    return Token(value=value, raw=value, start=0, end=0)


def _scan_balanced(text: str, pos: int, open_char: str, close_char: str) -> tuple[int, bool]:
    """Scan from the opening bracket at ``pos`` to its matching close.

    Returns (index just past the close, closed). Quotes and escapes inside
    are skipped so brackets in strings do not count.
    """
    n = len(text)
    depth = 0
    i = pos
    while i < n:
        c = text[i]
        if c == "\\":
            i += 2
            continue
        if c == "'":
            end = text.find("'", i + 1)
            if end == -1:
                return n, False
            i = end + 1
            continue
        if c == '"':
            i += 1
            while i < n and text[i] != '"':
                i += 2 if text[i] == "\\" else 1
            if i >= n:
                return n, False
            i += 1
            continue
        if c == "`":
            end = text.find("`", i + 1)
            if end == -1:
                return n, False
            i = end + 1
            continue
        if c == open_char:
            depth += 1
        elif c == close_char:
            depth -= 1
            if depth == 0:
                return i + 1, True
        i += 1
    return n, False


class _Tokenizer:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.tokens: list[Token] = []
        self.command_position = True
        # Heredoc delimiters waiting for the next newline: (delimiter, strip_tabs)
        self.heredocs: list[tuple[str, bool]] = []
        self.heredoc_strip_tabs: bool | None = None

    def run(self) -> list[Token]:
        text = self.text
        n = len(text)
        while self.pos < n:
            c = text[self.pos]
            if c in " \t":
                self.pos += 1
            elif c == "\\" and text.startswith("\\\n", self.pos):
                self.pos += 2
            elif c == "\n":
                self._emit_operator("\n", self.pos, self.pos + 1)
                self.pos += 1
                self._skip_heredoc_bodies()
            elif c == "#":
                end = text.find("\n", self.pos)
                self.pos = n if end == -1 else end
            elif text.startswith(("<(", ">("), self.pos):
                self._read_word()
            elif self._read_redirect() or self._read_operator():
                continue
            else:
                self._read_word()
        return self.tokens

    def _emit_operator(self, value: str, start: int, end: int) -> None:
        self.tokens.append(
            Token(value=value, raw=self.text[start:end], start=start, end=end, kind="operator")
        )
        self.command_position = True

    def _read_operator(self) -> bool:
        for op in OPERATORS:
            if self.text.startswith(op, self.pos):
                start = self.pos
                self.pos += len(op)
                # ";;" ends a case branch; treat it like ";"
                self._emit_operator(";" if op == ";;" else op, start, self.pos)
                return True
        return False

    def _read_redirect(self) -> bool:
        m = REDIRECT_RE.match(self.text, self.pos)
        if m is None:
            return False
        start = self.pos
        end = m.end()
        op = m.group(0)
        if op.endswith("&") and op not in ("&>", "&>>"):
            fd = FD_TARGET_RE.match(self.text, end)
            if fd is not None:
                end = fd.end()
        self.pos = end
        value = self.text[start:end]
        self.tokens.append(
            Token(value=value, raw=value, start=start, end=end, kind="redirect")
        )
        bare = op.lstrip("0123456789")
        if bare in ("<<", "<<-"):
            self.heredoc_strip_tabs = bare == "<<-"
        return True

    def _read_word(self) -> None:
        text = self.text
        n = len(text)
        start = self.pos
        parts: list[str] = []
        subs: list[str] = []
        quoted = False

        if text.startswith(("<(", ">("), self.pos):
            end, closed = _scan_balanced(text, self.pos + 1, "(", ")")
            parts.append(text[self.pos : end])
            subs.append(text[self.pos + 2 : end - 1 if closed else end])
            self.pos = end

        while self.pos < n:
            c = text[self.pos]
            if c in WORD_BREAK:
                break
            if c == "'":
                end = text.find("'", self.pos + 1)
                if end == -1:
                    parts.append(text[self.pos + 1 :])
                    self.pos = n
                else:
                    parts.append(text[self.pos + 1 : end])
                    self.pos = end + 1
                quoted = True
            elif c == '"':
                self._read_double_quoted(parts, subs)
                quoted = True
            elif c == "\\":
                if self.pos + 1 < n and text[self.pos + 1] != "\n":
                    parts.append(text[self.pos + 1])
                self.pos += 2
            elif c == "$" and text.startswith(("$(", "${"), self.pos):
                self._read_dollar(parts, subs)
            elif c == "`":
                self._read_backtick(parts, subs)
            else:
                parts.append(c)
                self.pos += 1

        self.pos = min(self.pos, n)
        if self.pos == start:
            # Stray break character no other rule consumed
            self.pos += 1
            return

        raw = text[start : self.pos]
        value = "".join(parts)

        if self.heredoc_strip_tabs is not None:
            self.heredocs.append((value, self.heredoc_strip_tabs))
            self.heredoc_strip_tabs = None
            kind: TokenKind = "word"
        elif self.command_position and is_assignment(raw):
            kind = "assignment"
        else:
            kind = "word"
            self.command_position = not quoted and value in KEYWORDS

        self.tokens.append(
            Token(
                value=value,
                raw=raw,
                start=start,
                end=self.pos,
                kind=kind,
                quoted=quoted,
                substitutions=tuple(subs),
            )
        )

    def _read_double_quoted(self, parts: list[str], subs: list[str]) -> None:
        text = self.text
        n = len(text)
        self.pos += 1
        while self.pos < n:
            c = text[self.pos]
            if c == '"':
                self.pos += 1
                return
            if c == "\\":
                if self.pos + 1 >= n:
                    parts.append("\\")
                    self.pos += 1
                    continue
                nxt = text[self.pos + 1]
                if nxt in '"\\$`':
                    parts.append(nxt)
                elif nxt != "\n":
                    parts.append("\\" + nxt)
                self.pos += 2
            elif c == "$" and text.startswith(("$(", "${"), self.pos):
                self._read_dollar(parts, subs)
            elif c == "`":
                self._read_backtick(parts, subs)
            else:
                parts.append(c)
                self.pos += 1

    def _read_dollar(self, parts: list[str], subs: list[str]) -> None:
        text = self.text
        if text.startswith("${", self.pos):
            end, _ = _scan_balanced(text, self.pos + 1, "{", "}")
            parts.append(text[self.pos : end])
            self.pos = end
            return
        end, closed = _scan_balanced(text, self.pos + 1, "(", ")")
        chunk = text[self.pos : end]
        parts.append(chunk)
        # $((...)) is arithmetic, not a command
        if not chunk.startswith("$(("):
            subs.append(text[self.pos + 2 : end - 1 if closed else end])
        self.pos = end

    def _read_backtick(self, parts: list[str], subs: list[str]) -> None:
        text = self.text
        i = self.pos + 1
        while i < len(text) and text[i] != "`":
            i += 2 if text[i] == "\\" else 1
        closed = i < len(text)
        body_end = min(i, len(text))
        end = body_end + 1 if closed else len(text)
        parts.append(text[self.pos : end])
        subs.append(text[self.pos + 1 : body_end].replace("\\`", "`"))
        self.pos = end

    def _skip_heredoc_bodies(self) -> None:
        text = self.text
        n = len(text)
        for delimiter, strip_tabs in self.heredocs:
            while self.pos < n:
                eol = text.find("\n", self.pos)
                line_end = n if eol == -1 else eol
                line = text[self.pos : line_end]
                self.pos = n if eol == -1 else eol + 1
                if (line.lstrip("\t") if strip_tabs else line) == delimiter:
                    break
        self.heredocs.clear()
