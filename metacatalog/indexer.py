"""
Turns property and tag writes into searchable index terms.

Every term is case-folded. For a property ``key=value`` the indexer chosen
for the key produces display tokens; each token ``t`` yields the bare term
``t`` and the keyed term ``key:t``. Tags are indexed under the reserved key
``tags``.

Prefix queries are answered by range scans over the ordered term index,
so no explicit prefix shards are stored.
"""

import json
import re

from .types import TAGS_KEY


# Runs of whitespace, hyphen or underscore split a value into words
_SPLIT_RE = re.compile(r'[\s_-]+')

KEYVALUE_SEPARATOR = ":"


class DefaultValueIndexer:
    """Split on whitespace, ``-`` and ``_``; keep the full value too."""

    def get_tokens(self, value: str) -> set[str]:
        tokens = {t for t in _SPLIT_RE.split(value) if t}
        if value.strip():
            tokens.add(value.strip())
        return tokens


class KeyValueIndexer(DefaultValueIndexer):
    """For values shaped ``name:detail``; also splits on the separator."""

    def get_tokens(self, value: str) -> set[str]:
        tokens = super().get_tokens(value)
        for part in value.split(KEYVALUE_SEPARATOR):
            tokens |= super().get_tokens(part)
        return tokens


class SchemaIndexer:
    """
    Index a JSON record schema by field.

    Each field contributes ``name`` and ``name:type``. Nullable unions
    report the non-null type; nested records contribute their own fields.
    Values that are not a record schema fall back to the default indexer.
    """

    def get_tokens(self, value: str) -> set[str]:
        try:
            schema = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return _DEFAULT.get_tokens(value)
        if not isinstance(schema, dict) or schema.get("type") != "record":
            return _DEFAULT.get_tokens(value)
        tokens: set[str] = set()
        self._add_fields(schema, tokens)
        return tokens

    def _add_fields(self, record: dict, tokens: set[str]) -> None:
        for f in record.get("fields", []):
            name = f.get("name")
            if not name:
                continue
            type_name, nested = _type_name(f.get("type"))
            tokens.add(name)
            tokens.add(f"{name}{KEYVALUE_SEPARATOR}{type_name}")
            if nested is not None:
                self._add_fields(nested, tokens)


def _type_name(schema) -> tuple[str, dict | None]:
    """Return (type name, nested record or None) for a field type."""
    if isinstance(schema, str):
        return schema, None
    if isinstance(schema, list):
        # Union: report the first non-null branch
        branches = [s for s in schema if s != "null"]
        if len(branches) == 1:
            return _type_name(branches[0])
        return "union", None
    if isinstance(schema, dict):
        type_name = schema.get("type", "")
        if type_name == "record":
            return schema.get("name") or "record", schema
        if type_name == "array":
            return "array", None
        if type_name == "map":
            return "map", None
        return str(type_name), None
    return str(schema), None


_DEFAULT = DefaultValueIndexer()
_KEYVALUE = KeyValueIndexer()
_SCHEMA = SchemaIndexer()

SCHEMA_KEY = "schema"

# Key prefixes whose values are written as name:detail pairs
KEYVALUE_KEY_PREFIXES = ("schedule:", "plugin:")


def indexer_for(key: str):
    """Pick the indexer for a property key."""
    folded = key.casefold()
    if folded == SCHEMA_KEY:
        return _SCHEMA
    if folded.startswith(KEYVALUE_KEY_PREFIXES):
        return _KEYVALUE
    return _DEFAULT


def property_terms(key: str, value: str) -> set[str]:
    """All case-folded index terms for one property."""
    folded_key = key.casefold()
    terms = set()
    for token in indexer_for(key).get_tokens(value):
        t = token.casefold()
        terms.add(t)
        terms.add(f"{folded_key}{KEYVALUE_SEPARATOR}{t}")
    return terms


def tag_terms(tag: str) -> set[str]:
    """All case-folded index terms for one tag."""
    terms = set()
    for token in _DEFAULT.get_tokens(tag):
        t = token.casefold()
        terms.add(t)
        terms.add(f"{TAGS_KEY}{KEYVALUE_SEPARATOR}{t}")
    return terms
