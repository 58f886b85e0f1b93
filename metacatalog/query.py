"""
Search query parsing.

A query is a list of terms separated by whitespace or ``+``; a result must
match every term. Each term is ``key:pattern`` or a bare ``pattern``, and a
pattern is a literal optionally followed by a single trailing ``*``.

Examples::

    purchase                  any value or tag token equal to "purchase"
    owner:alice               property owner with token "alice"
    owner:al*                 property owner with a token starting "al"
    schema:*                  any entity that has a schema property
    body:STRING+field1:INT    both schema fields (conjunction)
"""

import re
from dataclasses import dataclass
from typing import Optional

from .errors import BadRequestError
from .indexer import KEYVALUE_SEPARATOR

WILDCARD = "*"

_TERM_SPLIT_RE = re.compile(r'[\s+]+')


@dataclass(frozen=True)
class QueryTerm:
    """
    One parsed term, case-folded.

    ``lookup`` is the string matched against index terms: the whole
    ``key:pattern`` for keyed terms, the pattern alone otherwise.
    """
    key: Optional[str]
    pattern: str
    prefix: bool

    @property
    def lookup(self) -> str:
        if self.key is None:
            return self.pattern
        return f"{self.key}{KEYVALUE_SEPARATOR}{self.pattern}"


def parse_term(text: str) -> QueryTerm:
    """
    Parse a single term.

    The key is everything before the first ``:``; the rest (which may
    itself contain ``:``) is the pattern.

    Raises:
        BadRequestError: bare ``*``, empty key or pattern, or a ``*`` that
            is not the last character
    """
    key: Optional[str] = None
    pattern = text
    if KEYVALUE_SEPARATOR in text:
        key, _, pattern = text.partition(KEYVALUE_SEPARATOR)
        if not key:
            raise BadRequestError(f"Search term {text!r} has an empty key")
        if not pattern:
            raise BadRequestError(
                f"Search term {text!r} has an empty value. Use {key}:* to match any value"
            )

    prefix = pattern.endswith(WILDCARD)
    literal = pattern[:-1] if prefix else pattern
    if WILDCARD in literal:
        raise BadRequestError(
            f"Search term {text!r}: '*' is only allowed at the end of a value"
        )
    if prefix and not literal and key is None:
        raise BadRequestError("A bare '*' search is not supported")

    return QueryTerm(
        key=key.casefold() if key is not None else None,
        pattern=literal.casefold(),
        prefix=prefix,
    )


def parse_query(query: Optional[str]) -> list[QueryTerm]:
    """
    Parse a query string into its conjunctive terms.

    Duplicate terms are collapsed; order is otherwise preserved.

    Raises:
        BadRequestError: for an empty query or any malformed term
    """
    if query is None or not query.strip():
        raise BadRequestError("Search query must not be empty")
    terms: list[QueryTerm] = []
    for part in _TERM_SPLIT_RE.split(query.strip()):
        if not part:
            continue
        term = parse_term(part)
        if term not in terms:
            terms.append(term)
    if not terms:
        raise BadRequestError("Search query must not be empty")
    return terms
