"""Hardware address normalization and pattern matching.

Addresses are canonicalized to 12 lowercase hex nibbles without separators.
Patterns may use ``*`` for one whole byte (two nibbles) and ``[...]`` for a
single nibble drawn from a set of hex digits or ranges, e.g.
``00:11:22:33:44:[1-4][0-f]``.
"""

from __future__ import annotations

import string
from dataclasses import dataclass

from macfinder.errors import (
    EmptyBracketError,
    EmptyPatternError,
    InvalidBracketError,
    InvalidCharacterError,
    InvalidLengthError,
    UnmatchedBracketError,
)

SEPARATORS = ":.-"
NIBBLES = 12
HEX_UPPER = "0123456789ABCDEF"

_ANY_NIBBLE = frozenset(HEX_UPPER)


def _strip_separators(value: str) -> str:
    return "".join(ch for ch in value if ch not in SEPARATORS)


def normalize(text: str) -> str:
    """Return the canonical 12-nibble lowercase form of ``text``."""
    clean = _strip_separators(text.strip()).lower()
    if len(clean) != NIBBLES:
        raise InvalidLengthError(f"invalid MAC address length: {text}")
    if not all(ch in string.hexdigits for ch in clean):
        raise InvalidCharacterError(f"invalid MAC address characters: {text}")
    return clean


def format_mac(canonical: str) -> str:
    """Render a canonical address as ``xx:xx:xx:xx:xx:xx``."""
    clean = canonical.lower()
    if len(clean) != NIBBLES:
        return clean
    return ":".join(clean[i : i + 2] for i in range(0, NIBBLES, 2))


def try_normalize(text: str | None) -> str | None:
    if not text:
        return None
    try:
        return normalize(text)
    except InvalidLengthError:
        return None
    except InvalidCharacterError:
        return None


@dataclass(frozen=True)
class MacPattern:
    """A compiled address pattern; call it with any address text."""

    display: str
    is_wildcard: bool
    canonical: str | None = None
    nibbles: tuple[frozenset[str], ...] = ()

    def __call__(self, address: str) -> bool:
        candidate = try_normalize(address)
        if candidate is None:
            return False
        if self.canonical is not None:
            return candidate == self.canonical
        upper = candidate.upper()
        return all(ch in allowed for ch, allowed in zip(upper, self.nibbles))

    @classmethod
    def match_all(cls) -> MacPattern:
        return cls(display="*", is_wildcard=True, nibbles=(_ANY_NIBBLE,) * NIBBLES)


def _expand_bracket(token: str) -> frozenset[str]:
    inner = token[1:-1].upper()
    if not inner:
        raise EmptyBracketError("empty bracket pattern")
    for ch in inner:
        if ch != "-" and ch not in HEX_UPPER:
            raise InvalidBracketError(f"invalid bracket pattern: {token}")

    allowed: set[str] = set()
    i = 0
    while i < len(inner):
        ch = inner[i]
        if ch == "-":
            i += 1
            continue
        if i + 2 < len(inner) and inner[i + 1] == "-" and inner[i + 2] != "-":
            start, end = HEX_UPPER.index(ch), HEX_UPPER.index(inner[i + 2])
            if start > end:
                raise InvalidBracketError(f"invalid bracket range: {token}")
            allowed.update(HEX_UPPER[start : end + 1])
            i += 3
            continue
        allowed.add(ch)
        i += 1

    if not allowed:
        raise EmptyBracketError(f"empty bracket pattern: {token}")
    return frozenset(allowed)


def _parse_nibbles(text: str) -> tuple[frozenset[str], ...]:
    nibbles: list[frozenset[str]] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in SEPARATORS:
            i += 1
        elif ch == "[":
            end = text.find("]", i)
            if end == -1:
                raise UnmatchedBracketError("unmatched bracket in MAC pattern")
            nibbles.append(_expand_bracket(text[i : end + 1]))
            i = end + 1
        elif ch == "*":
            nibbles.extend((_ANY_NIBBLE, _ANY_NIBBLE))
            i += 1
        elif ch in HEX_UPPER:
            nibbles.append(frozenset(ch))
            i += 1
        else:
            raise InvalidCharacterError(f"invalid MAC pattern: {text}")

    if len(nibbles) != NIBBLES:
        raise InvalidLengthError(
            f"invalid MAC pattern length (need {NIBBLES} nibbles): {text}"
        )
    return tuple(nibbles)


def compile_pattern(text: str) -> MacPattern:
    """Compile an exact address or wildcard pattern into a matcher.

    Separators are ignored outside brackets; inside a bracket ``-`` denotes a
    range. A ``*`` stands for one byte, so it contributes two nibbles.
    """
    text = text.strip()
    if not text:
        raise EmptyPatternError("MAC pattern cannot be empty")

    if "*" not in text and "[" not in text:
        canonical = normalize(text)
        return MacPattern(display=format_mac(canonical), is_wildcard=False, canonical=canonical)

    return MacPattern(display=text, is_wildcard=True, nibbles=_parse_nibbles(text.upper()))
