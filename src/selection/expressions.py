"""
Parsing of selection expressions.

An expression is parsed once into an immutable :class:`Selection` and cached,
so that regular expressions are compiled per expression rather than per
entity. Recognised forms::

    all | none | first | last
    N | #N                  zero-based index, negative counts from the end
    A:B | #A:B              half-open range, either bound may be omitted
    key=pattern[;key=...]   metadata predicates, all of which must hold

Patterns are case-insensitive regular expressions matched against the whole
metadata value.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum, auto
from functools import lru_cache
from typing import Final

from exceptions import SelectorSyntaxError

type MetadataPredicate = Callable[[Mapping[str, str]], bool]

PREDICATE_SEPARATOR: Final[str] = ";"
_INDEX = re.compile(r"#?\s*(?P<index>[+-]?\d+)")
_RANGE = re.compile(r"#?\s*(?P<start>[+-]?\d+)?\s*:\s*(?P<stop>[+-]?\d+)?")


class SelectionKind(StrEnum):
    ALL = auto()
    NONE = auto()
    FIRST = auto()
    LAST = auto()
    INDEX = auto()
    RANGE = auto()
    METADATA = auto()


@dataclass(frozen=True)
class Selection:
    """A parsed selection expression."""

    expression: str
    kind: SelectionKind
    span: slice | None = None
    predicates: tuple[MetadataPredicate, ...] = field(default=(), repr=False)

    def matches(self, metadata: Mapping[str, str]) -> bool:
        return all(predicate(metadata) for predicate in self.predicates)


def _metadata_predicate(key: str, pattern: re.Pattern[str]) -> MetadataPredicate:
    def predicate(metadata: Mapping[str, str]) -> bool:
        value = metadata.get(key)
        return value is not None and pattern.fullmatch(value) is not None

    return predicate


def _compile_predicates(expression: str) -> tuple[MetadataPredicate, ...]:
    predicates = []
    for term in expression.split(PREDICATE_SEPARATOR):
        if not term.strip():
            continue
        key, separator, raw_pattern = term.partition("=")
        if not separator or not (key := key.strip()):
            raise SelectorSyntaxError(expression, f"'{term}' is not of the form key=pattern")
        try:
            pattern = re.compile(raw_pattern.strip(), re.IGNORECASE)
        except re.error as error:
            raise SelectorSyntaxError(
                expression, f"malformed pattern for '{key}': {error}"
            ) from error
        predicates.append(_metadata_predicate(key, pattern))
    if not predicates:
        raise SelectorSyntaxError(expression, "no predicates given")
    return tuple(predicates)


@lru_cache(maxsize=256)
def parse_selection(expression: str) -> Selection:
    """
    Parse a selection expression.

    :param expression: The expression to parse.
    :returns: The parsed, immutable selection.
    :raises SelectorSyntaxError: If the expression or one of its patterns is malformed.
    """
    text = expression.strip()
    if not text:
        raise SelectorSyntaxError(expression, "empty expression")

    if (keyword := text.lower()) in (
        SelectionKind.ALL,
        SelectionKind.NONE,
        SelectionKind.FIRST,
        SelectionKind.LAST,
    ):
        return Selection(expression, SelectionKind(keyword))

    if match := _INDEX.fullmatch(text):
        index = int(match["index"])
        # slice(-1, 0) would be empty, so the last element needs an open stop.
        stop = None if index == -1 else index + 1
        return Selection(expression, SelectionKind.INDEX, span=slice(index, stop))

    if "=" not in text and (match := _RANGE.fullmatch(text)):
        start, stop = (
            int(bound) if bound is not None else None
            for bound in (match["start"], match["stop"])
        )
        return Selection(expression, SelectionKind.RANGE, span=slice(start, stop))

    if "=" in text:
        return Selection(
            expression, SelectionKind.METADATA, predicates=_compile_predicates(text)
        )

    raise SelectorSyntaxError(expression, "unrecognised selection")


@lru_cache(maxsize=256)
def metadata_selection(*patterns: tuple[str, str]) -> Selection:
    """
    Build a metadata selection from ``(key, pattern)`` pairs directly.

    Unlike the ``key=pattern`` expression form, patterns may contain ``;`` and ``=``.

    :raises SelectorSyntaxError: If a pattern is malformed.
    """
    expression = PREDICATE_SEPARATOR.join(f"{key}={pattern}" for key, pattern in patterns)
    predicates = []
    for key, raw_pattern in patterns:
        try:
            pattern = re.compile(raw_pattern, re.IGNORECASE)
        except re.error as error:
            raise SelectorSyntaxError(
                expression, f"malformed pattern for '{key}': {error}"
            ) from error
        predicates.append(_metadata_predicate(key, pattern))
    return Selection(expression, SelectionKind.METADATA, predicates=tuple(predicates))
