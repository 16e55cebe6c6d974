"""
Category input normalization and resolution.

Clients send categories in many shapes: a JSON array, a JSON-encoded array
inside a form field, comma separated text, repeated ``categories[]`` fields or
indexed ``categories[0]``, ``categories[1]`` ... fields. ``normalize_category_input``
folds all of them into a flat list of tagged tokens, and ``resolve_category_ids``
turns the tokens into category ObjectIds with a single query.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Union

from bson.objectid import ObjectId

from database import is_object_id
from errors import ValidationError

CATEGORY_FIELDS = ("categories", "categories[]")
EXPLICIT_ID_FIELD = "category_ids"
INDEXED_FIELD = re.compile(r"^categories\[(\d+)\]$")

EXACT = "exact"
SUBSTRING = "substring"


@dataclass(frozen=True)
class DirectId:
    value: ObjectId


@dataclass(frozen=True)
class Keyword:
    text: str


CategoryToken = Union[DirectId, Keyword]


class NoValidCategories(ValidationError):
    default_message = "No valid categories provided (send Category IDs or valid keywords)."


def _raw_tokens(value: Any) -> Iterable[str]:
    if value is None:
        return
    if isinstance(value, (list, tuple, set)):
        for item in value:
            yield from _raw_tokens(item)
        return
    if not isinstance(value, str):
        yield str(value)
        return
    text = value.strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            yield from _raw_tokens(parsed)
            return
    for part in text.split(","):
        yield part


def _classify(raw: str) -> CategoryToken:
    if is_object_id(raw):
        return DirectId(ObjectId(raw))
    return Keyword(raw)


def _dedupe(tokens: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for raw in tokens:
        raw = raw.strip()
        if raw and raw not in seen:
            seen.add(raw)
            out.append(raw)
    return out


def has_category_input(payload: Mapping[str, Any]) -> bool:
    if any(key in payload for key in CATEGORY_FIELDS + (EXPLICIT_ID_FIELD,)):
        return True
    return any(INDEXED_FIELD.match(str(key)) for key in payload)


def normalize_category_input(payload: Mapping[str, Any]) -> List[CategoryToken]:
    """Collect every category value in ``payload`` as DirectId / Keyword tokens.

    Explicit ``category_ids`` win when at least one of them is a valid id;
    otherwise every ``categories`` style field is unioned.
    """
    explicit = [raw for raw in _dedupe(_raw_tokens(payload.get(EXPLICIT_ID_FIELD))) if is_object_id(raw)]
    if explicit:
        return [DirectId(ObjectId(raw)) for raw in explicit]

    found: List[str] = []
    for field in CATEGORY_FIELDS:
        found.extend(_raw_tokens(payload.get(field)))

    indexed = []
    for key, value in payload.items():
        match = INDEXED_FIELD.match(str(key))
        if match:
            indexed.append((int(match.group(1)), value))
    for _, value in sorted(indexed, key=lambda pair: pair[0]):
        found.extend(_raw_tokens(value))

    return [_classify(raw) for raw in _dedupe(found)]


def _keyword_pattern(text: str, match: str):
    escaped = re.escape(text)
    if match == EXACT:
        escaped = f"^{escaped}$"
    return re.compile(escaped, re.IGNORECASE)


def resolve_category_ids(database, tokens: List[CategoryToken], match: str = EXACT) -> List[ObjectId]:
    """Resolve tokens to existing category ids in one query.

    Keywords are compared case-insensitively against every keyword of a
    category, either as the whole keyword (``exact``) or as a substring.
    """
    ids = [t.value for t in tokens if isinstance(t, DirectId)]
    patterns = [_keyword_pattern(t.text, match) for t in tokens if isinstance(t, Keyword)]
    clauses = []
    if ids:
        clauses.append({"_id": {"$in": ids}})
    if patterns:
        clauses.append({"keywords": {"$in": patterns}})
    if not clauses:
        return []

    found = {c["_id"] for c in database["category"].find({"$or": clauses}, {"_id": 1})}
    # keep the caller's order for direct ids, then anything matched by keyword
    ordered = []
    for i in ids:
        if i in found and i not in ordered:
            ordered.append(i)
    ordered.extend(sorted(found.difference(ordered)))
    return ordered


def require_category_ids(database, payload: Mapping[str, Any]) -> List[ObjectId]:
    resolved = resolve_category_ids(database, normalize_category_input(payload), EXACT)
    if not resolved:
        raise NoValidCategories()
    return resolved
