"""
Segmenter: split a token stream into independent commands.

A segment is one command between chain operators (&&, ||, |, ;, &, newline,
and subshell parentheses). Only operator tokens split, so operators inside
quotes or embedded in a larger word never do.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from functools import cached_property

from safety_net.core.bash import bash_quote
from safety_net.core.tokenizer import Token, tokenize, word_token

# Redirects that duplicate a descriptor (2>&1, >&-) carry no target word
FD_DUP_RE = re.compile(r"\d*[<>]&(?:\d+-?|-)")


class Operator(str, Enum):
    """Chain operator that precedes a segment."""

    AND = "&&"
    OR = "||"
    PIPE = "|"
    PIPE_ALL = "|&"
    SEQUENCE = ";"
    BACKGROUND = "&"
    NEWLINE = "\n"
    GROUP_OPEN = "("
    GROUP_CLOSE = ")"


def redirect_has_target(op: str) -> bool:
    """Whether a redirect operator is followed by a target word."""
    return FD_DUP_RE.fullmatch(op) is None


def is_output_redirect(op: str) -> bool:
    bare = op.lstrip("0123456789")
    return bare.startswith(">") or bare.startswith("&>")


def is_input_redirect(op: str) -> bool:
    bare = op.lstrip("0123456789")
    return bare in ("<", "<>")


@dataclass(frozen=True)
class Segment:
    """One command between chain operators.

    ``wrappers`` lists the wrapper commands (sudo, env, bash -c, ...) that
    were stripped to reach this command. ``nested`` holds the commands of an
    embedded ``-c`` string when it contained more than one.
    """

    tokens: tuple[Token, ...]
    operator: Operator | None = None
    depth: int = 0
    wrappers: tuple[str, ...] = ()
    nested: tuple[Segment, ...] = ()

    def __post_init__(self) -> None:
        if not self.tokens:
            raise ValueError("segment must contain at least one token")

    @classmethod
    def from_words(cls, words: list[str] | tuple[str, ...], depth: int = 0) -> Segment:
        """Build a segment from an already-split word list (e.g. find -exec args)."""
        return cls(tokens=tuple(word_token(w) for w in words), depth=depth)

    @cached_property
    def _target_indices(self) -> frozenset[int]:
        targets = set()
        for i, token in enumerate(self.tokens):
            if token.kind != "redirect" or not redirect_has_target(token.value):
                continue
            if i + 1 < len(self.tokens) and self.tokens[i + 1].kind in ("word", "assignment"):
                targets.add(i + 1)
        return frozenset(targets)

    @cached_property
    def word_indices(self) -> tuple[int, ...]:
        """Token indices of command words (no assignments, redirects or redirect targets)."""
        return tuple(
            i
            for i, token in enumerate(self.tokens)
            if token.is_word and i not in self._target_indices
        )

    @cached_property
    def words(self) -> tuple[str, ...]:
        return tuple(self.tokens[i].value for i in self.word_indices)

    @property
    def command(self) -> str | None:
        return self.words[0] if self.words else None

    @property
    def args(self) -> tuple[str, ...]:
        return self.words[1:]

    @cached_property
    def redirects(self) -> tuple[tuple[str, str | None], ...]:
        """(operator, target) pairs; target is None for descriptor duplication."""
        result = []
        for i, token in enumerate(self.tokens):
            if token.kind != "redirect":
                continue
            target = self.tokens[i + 1].value if i + 1 in self._target_indices else None
            result.append((token.value, target))
        return tuple(result)

    @cached_property
    def text(self) -> str:
        """Token values joined by spaces, used for pattern matching."""
        return " ".join(t.value for t in self.tokens)

    @cached_property
    def display(self) -> str:
        """Shell-quoted rendering for messages."""
        return " ".join(
            t.value if t.kind == "redirect" else bash_quote(t.value) for t in self.tokens
        )

    @property
    def substitutions(self) -> tuple[str, ...]:
        return tuple(body for t in self.tokens for body in t.substitutions)

    def strip_to(self, index: int) -> Segment:
        """Drop the tokens before ``index``, keeping any redirects among them."""
        kept = tuple(
            t
            for i, t in enumerate(self.tokens[:index])
            if t.kind == "redirect" or i in self._target_indices
        )
        return replace(self, tokens=kept + self.tokens[index:])

    def __repr__(self) -> str:
        return f"Segment({self.display!r}, depth={self.depth})"


def segment(tokens: list[Token], depth: int = 0) -> list[Segment]:
    """Split tokens into segments at operator tokens. Empty segments are dropped."""
    segments: list[Segment] = []
    current: list[Token] = []
    operator: Operator | None = None

    def flush() -> None:
        if current:
            segments.append(
                Segment(
                    tokens=tuple(current),
                    operator=operator if segments else None,
                    depth=depth,
                )
            )

    for token in tokens:
        if token.kind == "operator":
            flush()
            current = []
            operator = Operator(token.value)
        else:
            current.append(token)
    flush()
    return segments


def split_command(command: str, depth: int = 0) -> list[Segment]:
    """Tokenize and segment a raw command string."""
    return segment(tokenize(command), depth=depth)
