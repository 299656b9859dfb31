"""
Task query engine.

Turns a snapshot of task documents plus a request's filter/sort/pagination
parameters into an ordered, quadrant-annotated page. The engine is pure: it
performs no I/O, keeps no state between calls and never raises on malformed
parameters (bad values are clamped, defaulted or ignored).
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .models import QUADRANTS, QuadrantScheme

DEFAULT_LIMIT = 50
MIN_LIMIT = 1
MAX_LIMIT = 100

DEFAULT_STATUS = "active"
DEFAULT_SORT = "created_at"

TIMESTAMP_FIELDS = ("createdAt", "updatedAt", "deletedAt", "archivedAt")
PAGINATION_PARAMS = ("limit", "offset", "size", "page")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Accepted spellings for each sort field, matched case-insensitively
SORT_ALIASES = {
    "created_at": "created_at",
    "createdat": "created_at",
    "created": "created_at",
    "date": "created_at",
    "updated_at": "updated_at",
    "updatedat": "updated_at",
    "updated": "updated_at",
    "due_date": "due_date",
    "duedate": "due_date",
    "due": "due_date",
    "quadrant": "quadrant",
    "title": "title",
}

_RANKS = {flags: rank for rank, (flags, _) in enumerate(QUADRANTS)}
_QUADRANT_CODES = {flags: codes for flags, codes in QUADRANTS}
_CODES = {
    scheme: {codes[scheme].lower(): flags for flags, codes in QUADRANTS}
    for scheme in QuadrantScheme
}


# ---------------------------------------------------------------------------
# Quadrants
# ---------------------------------------------------------------------------


def quadrant_for(important: Any, urgent: Any, scheme: QuadrantScheme = QuadrantScheme.MATRIX) -> str:
    """Quadrant code for a pair of flags in the given naming scheme."""
    return _QUADRANT_CODES[(bool(important), bool(urgent))][scheme]


def quadrant_flags(code: Any, scheme: Optional[QuadrantScheme] = None) -> Optional[Tuple[bool, bool]]:
    """(important, urgent) for a quadrant code, or None when unrecognised.

    With a scheme, only that scheme's codes are accepted; without one, a code
    from either scheme is.
    """
    if not isinstance(code, str) or not code.strip():
        return None
    key = code.strip().lower()
    schemes = [scheme] if scheme is not None else list(QuadrantScheme)
    for candidate in schemes:
        flags = _CODES[candidate].get(key)
        if flags is not None:
            return flags
    return None


def _flags(record: Mapping[str, Any]) -> Tuple[bool, bool]:
    return bool(record.get("important", False)), bool(record.get("urgent", False))


def quadrant_rank(record: Mapping[str, Any]) -> int:
    return _RANKS[_flags(record)]


def group_by_quadrant(
    tasks: Iterable[Mapping[str, Any]], scheme: QuadrantScheme = QuadrantScheme.MATRIX
) -> Dict[str, List[Mapping[str, Any]]]:
    """Group tasks into the four quadrants, keeping their incoming order."""
    groups: Dict[str, List[Mapping[str, Any]]] = {codes[scheme]: [] for _, codes in QUADRANTS}
    for task in tasks:
        groups[quadrant_for(*_flags(task), scheme=scheme)].append(task)
    return groups


# ---------------------------------------------------------------------------
# Timestamps and dates
# ---------------------------------------------------------------------------


def timestamp_millis(value: Any) -> Optional[int]:
    """Epoch milliseconds for any timestamp representation we may find stored."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int((value - _EPOCH) / timedelta(milliseconds=1))
    if isinstance(value, (int, float)):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        # Values this small are epoch seconds, not milliseconds
        if abs(value) < 1e11:
            return int(value * 1000)
        return int(value)
    if isinstance(value, Mapping):
        seconds = value.get("_seconds", value.get("seconds"))
        nanos = value.get("_nanoseconds", value.get("nanoseconds")) or 0
        try:
            return int(seconds) * 1000 + int(nanos) // 1_000_000
        except (TypeError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return timestamp_millis(float(text))
        except ValueError:
            pass
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return timestamp_millis(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def normalize_timestamp(value: Any) -> Optional[str]:
    """ISO-8601 UTC text (``2026-01-20T10:00:00.000Z``) or None."""
    millis = timestamp_millis(value)
    if millis is None:
        return None
    try:
        moment = _EPOCH + timedelta(milliseconds=millis)
    except (OverflowError, ValueError):
        return None
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def due_date_of(record: Mapping[str, Any]) -> Optional[date]:
    raw = record.get("dueDate")
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError:
        return None


def _title_key(record: Mapping[str, Any]) -> Tuple[str, str]:
    title = str(record.get("title") or "")
    return unicodedata.normalize("NFKD", title).casefold(), title


# ---------------------------------------------------------------------------
# Request descriptor
# ---------------------------------------------------------------------------


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return int(float(text))
    except (ValueError, OverflowError):
        return None


def _first(params: Mapping[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = params.get(name)
        if value is not None and str(value).strip() != "":
            return str(value).strip()
    return None


def _search_term(params: Mapping[str, Any]) -> Optional[str]:
    """First non-blank of ``search``/``q``, kept as typed (inner and edge spaces count)."""
    for name in ("search", "q"):
        value = params.get(name)
        if value is not None and str(value).strip() != "":
            return str(value)
    return None


def _parse_direction(value: Optional[str]) -> Optional[bool]:
    """True for descending, False for ascending, None when unrecognised."""
    if value is None:
        return None
    value = value.lower()
    if value == "desc":
        return True
    if value == "asc":
        return False
    return None


def _parse_sort_token(token: Optional[str]) -> Tuple[Optional[str], Optional[bool]]:
    """Split a sort token into (field, descending); either may be None."""
    if token is None:
        return None, None
    token = token.lower()
    if token in SORT_ALIASES:
        return SORT_ALIASES[token], None
    base, _, suffix = token.rpartition("_")
    direction = _parse_direction(suffix)
    if direction is not None and base in SORT_ALIASES:
        return SORT_ALIASES[base], direction
    return None, None


@dataclass(frozen=True)
class TaskQuery:
    """Parsed filter/sort/pagination options for one request."""

    scheme: QuadrantScheme = QuadrantScheme.MATRIX
    status: str = DEFAULT_STATUS
    quadrant: Optional[Tuple[bool, bool]] = None
    search: Optional[str] = None
    sort: str = DEFAULT_SORT
    descending: bool = True
    # Quadrant ordering only honours a direction given in the sort token itself
    token_direction: bool = False
    paginate: bool = False
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    @classmethod
    def from_params(
        cls, params: Mapping[str, Any], scheme: QuadrantScheme = QuadrantScheme.MATRIX
    ) -> "TaskQuery":
        status = _first(params, "status") or DEFAULT_STATUS
        # Either vocabulary filters; the scheme only decides output codes
        quadrant = quadrant_flags(_first(params, "quadrant"))

        search = _search_term(params)

        field, token_direction = _parse_sort_token(_first(params, "orderBy", "order_by", "sort"))
        param_direction = _parse_direction(_first(params, "orderDir", "order_dir", "order"))
        if token_direction is not None:
            descending = token_direction
        elif param_direction is not None:
            descending = param_direction
        elif field is not None and scheme is QuadrantScheme.MATRIX:
            descending = False
        else:
            descending = True

        paginate = any(name in params for name in PAGINATION_PARAMS)
        limit, offset = DEFAULT_LIMIT, 0
        if paginate:
            raw_limit = _parse_int(params.get("limit"))
            if raw_limit is None:
                raw_limit = _parse_int(params.get("size"))
            if raw_limit is None:
                raw_limit = DEFAULT_LIMIT
            limit = min(MAX_LIMIT, max(MIN_LIMIT, raw_limit))

            page = _parse_int(params.get("page"))
            if page is not None:
                offset = (max(1, page) - 1) * limit
            else:
                offset = max(0, _parse_int(params.get("offset")) or 0)

        return cls(
            scheme=scheme,
            status=status,
            quadrant=quadrant,
            search=search,
            sort=field or DEFAULT_SORT,
            descending=descending,
            token_direction=token_direction is not None,
            paginate=paginate,
            limit=limit,
            offset=offset,
        )


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def store_filters(query: TaskQuery) -> Dict[str, Any]:
    """Equality filters a document store may push down for this query."""
    if query.status == "active":
        filters: Dict[str, Any] = {"status": "active", "done": False}
    elif query.status == "done":
        filters = {"status": "active", "done": True}
    else:
        filters = {"status": query.status}
    if query.quadrant is not None:
        filters["important"], filters["urgent"] = query.quadrant
    return filters


def field_value(record: Mapping[str, Any], name: str) -> Any:
    """Stored value with the data-model default applied for missing fields."""
    if name == "status":
        return record.get("status") or DEFAULT_STATUS
    if name in ("done", "important", "urgent"):
        return bool(record.get(name, False))
    return record.get(name)


def matches_filters(record: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    return all(field_value(record, name) == expected for name, expected in filters.items())


def matches_search(record: Mapping[str, Any], term: Optional[str]) -> bool:
    if not term:
        return True
    needle = term.casefold()
    title = str(record.get("title") or "").casefold()
    description = str(record.get("description") or "").casefold()
    return needle in title or needle in description


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


def _cmp(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def _compare_primary(a: Mapping[str, Any], b: Mapping[str, Any], query: TaskQuery) -> int:
    if query.sort == "due_date":
        due_a, due_b = due_date_of(a), due_date_of(b)
        # Undated tasks go last whatever the direction
        if due_a is None or due_b is None:
            return _cmp(due_a is None, due_b is None)
        result = _cmp(due_a, due_b)
    elif query.sort == "quadrant":
        result = _cmp(quadrant_rank(a), quadrant_rank(b))
        if not query.token_direction:
            return result
    elif query.sort == "title":
        result = _cmp(_title_key(a), _title_key(b))
    elif query.sort == "updated_at":
        result = _cmp(timestamp_millis(a.get("updatedAt")) or 0, timestamp_millis(b.get("updatedAt")) or 0)
    else:
        result = _cmp(timestamp_millis(a.get("createdAt")) or 0, timestamp_millis(b.get("createdAt")) or 0)
    return -result if query.descending else result


def _compare_tiebreak(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
    created = _cmp(timestamp_millis(b.get("createdAt")) or 0, timestamp_millis(a.get("createdAt")) or 0)
    if created:
        return created
    return _cmp(str(a.get("id", "")), str(b.get("id", "")))


def sort_tasks(records: Iterable[Mapping[str, Any]], query: TaskQuery) -> List[Mapping[str, Any]]:
    def compare(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
        return _compare_primary(a, b, query) or _compare_tiebreak(a, b)

    return sorted(records, key=cmp_to_key(compare))


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def annotate(record: Mapping[str, Any], scheme: QuadrantScheme = QuadrantScheme.MATRIX) -> Dict[str, Any]:
    """Copy of a task with its quadrant and normalized timestamps."""
    task = dict(record)
    task["quadrant"] = quadrant_for(*_flags(record), scheme=scheme)
    for name in TIMESTAMP_FIELDS:
        if name in task:
            task[name] = normalize_timestamp(task[name])
    return task


@dataclass
class Pagination:
    limit: int
    offset: int
    returned: int

    def to_dict(self) -> Dict[str, int]:
        return {"limit": self.limit, "offset": self.offset, "returned": self.returned}


@dataclass
class QueryResult:
    tasks: List[Dict[str, Any]]
    total: int
    pagination: Optional[Pagination] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "tasks": self.tasks,
            "count": len(self.tasks),
            "total": self.total,
        }
        if self.pagination is not None:
            body["pagination"] = self.pagination.to_dict()
        return body


def run_query(records: Iterable[Mapping[str, Any]], query: TaskQuery) -> QueryResult:
    """Filter, sort and paginate a snapshot of task documents."""
    filters = store_filters(query)
    selected = [
        record
        for record in records
        if matches_filters(record, filters) and matches_search(record, query.search)
    ]
    ordered = sort_tasks(selected, query)
    total = len(ordered)

    pagination = None
    if query.paginate:
        ordered = ordered[query.offset : query.offset + query.limit]
        pagination = Pagination(limit=query.limit, offset=query.offset, returned=len(ordered))

    return QueryResult(
        tasks=[annotate(record, query.scheme) for record in ordered],
        total=total,
        pagination=pagination,
    )
