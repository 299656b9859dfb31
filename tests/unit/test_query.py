# Unit tests for the task query engine
import copy
import random
from datetime import datetime, timezone

import pytest

from TallyTasks.shared.models import QuadrantScheme
from TallyTasks.shared.query import (
    MAX_LIMIT,
    TaskQuery,
    group_by_quadrant,
    normalize_timestamp,
    quadrant_flags,
    quadrant_for,
    run_query,
    store_filters,
    timestamp_millis,
)

MATRIX = QuadrantScheme.MATRIX
CODES = QuadrantScheme.CODES


def query(scheme=MATRIX, **params):
    return TaskQuery.from_params(params, scheme)


def ids(result):
    return [task["id"] for task in result.tasks]


@pytest.mark.unit
class TestQuadrants:
    """Quadrant classification in both naming schemes."""

    @pytest.mark.parametrize(
        "important,urgent,matrix_code,letter_code",
        [
            (True, True, "do-first", "UI"),
            (True, False, "schedule", "NUI"),
            (False, True, "delegate", "UNI"),
            (False, False, "eliminate", "NUNI"),
        ],
    )
    def test_quadrant_table(self, important, urgent, matrix_code, letter_code):
        assert quadrant_for(important, urgent, MATRIX) == matrix_code
        assert quadrant_for(important, urgent, CODES) == letter_code
        assert quadrant_flags(matrix_code) == (important, urgent)
        assert quadrant_flags(letter_code) == (important, urgent)

    def test_flags_restricted_to_scheme(self):
        assert quadrant_flags("UI", MATRIX) is None
        assert quadrant_flags("do-first", CODES) is None
        assert quadrant_flags("Do-First", MATRIX) == (True, True)
        assert quadrant_flags("nuni", CODES) == (False, False)
        assert quadrant_flags("someday") is None
        assert quadrant_flags(None) is None

    def test_annotation_independent_of_storage_order(self, make_record):
        records = [
            make_record(f"t{i}", important=i % 2 == 0, urgent=i % 3 == 0, createdAt=1704067200000 + i)
            for i in range(12)
        ]
        expected = {r["id"]: quadrant_for(r["important"], r["urgent"]) for r in records}

        shuffled = records[:]
        random.Random(7).shuffle(shuffled)
        for snapshot in (records, shuffled):
            result = run_query(snapshot, query())
            assert {t["id"]: t["quadrant"] for t in result.tasks} == expected

    def test_missing_flags_mean_eliminate(self):
        result = run_query([{"id": "bare", "title": "No flags"}], query())
        assert result.tasks[0]["quadrant"] == "eliminate"

    def test_group_by_quadrant_keeps_order(self, make_record):
        records = [
            make_record("a", important=True, urgent=True),
            make_record("b", urgent=True),
            make_record("c", important=True, urgent=True),
        ]
        groups = group_by_quadrant(records, CODES)
        assert list(groups) == ["UI", "NUI", "UNI", "NUNI"]
        assert [t["id"] for t in groups["UI"]] == ["a", "c"]
        assert [t["id"] for t in groups["UNI"]] == ["b"]
        assert groups["NUNI"] == []


@pytest.mark.unit
class TestFiltering:
    """Status, quadrant and search selection."""

    @pytest.fixture
    def records(self, make_record):
        return [
            make_record("open", title="Open"),
            make_record("finished", title="Finished", done=True),
            make_record("archived", title="Archived", status="archived"),
            make_record("trashed", title="Trashed", status="deleted", done=True),
        ]

    def test_active_is_default_and_excludes_done(self, records):
        assert ids(run_query(records, query())) == ["open"]
        assert ids(run_query(records, query(status="active"))) == ["open"]

    def test_done_selects_active_completed(self, records):
        assert ids(run_query(records, query(status="done"))) == ["finished"]

    def test_other_status_matches_verbatim(self, records):
        assert ids(run_query(records, query(status="archived"))) == ["archived"]
        assert ids(run_query(records, query(status="deleted"))) == ["trashed"]
        assert ids(run_query(records, query(status="Deleted"))) == []
        assert ids(run_query(records, query(status="snoozed"))) == []

    def test_blank_status_falls_back_to_active(self, records):
        assert ids(run_query(records, query(status=""))) == ["open"]

    def test_store_filters(self):
        assert store_filters(query()) == {"status": "active", "done": False}
        assert store_filters(query(status="done")) == {"status": "active", "done": True}
        assert store_filters(query(status="archived")) == {"status": "archived"}
        assert store_filters(query(quadrant="schedule")) == {
            "status": "active",
            "done": False,
            "important": True,
            "urgent": False,
        }

    def test_missing_status_and_done_use_defaults(self):
        result = run_query([{"id": "legacy", "title": "Old record"}], query())
        assert ids(result) == ["legacy"]

    def test_quadrant_filter(self, make_record):
        records = [
            make_record("q1", important=True, urgent=True),
            make_record("q2", important=True),
            make_record("q3", urgent=True),
        ]
        assert ids(run_query(records, query(quadrant="do-first"))) == ["q1"]
        assert ids(run_query(records, query(CODES, quadrant="NUI"))) == ["q2"]
        assert ids(run_query(records, query(CODES, quadrant="uni"))) == ["q3"]

    def test_unrecognised_quadrant_is_ignored(self, make_record):
        records = [make_record("q1", important=True, urgent=True), make_record("q4")]
        assert len(run_query(records, query(quadrant="someday")).tasks) == 2

    def test_quadrant_filter_accepts_either_vocabulary(self, make_record):
        records = [
            make_record("pay", title="Pay invoice", important=True, urgent=True),
            make_record("someday", title="Someday"),
        ]
        result = run_query(records, query(MATRIX, quadrant="UI"))
        assert ids(result) == ["pay"]
        assert result.tasks[0]["quadrant"] == "do-first"

        result = run_query(records, query(CODES, quadrant="do-first"))
        assert ids(result) == ["pay"]
        assert result.tasks[0]["quadrant"] == "UI"

        assert ids(run_query(records, query(CODES, quadrant="Eliminate"))) == ["someday"]

    def test_search_is_case_insensitive_over_title_and_description(self, make_record):
        records = [
            make_record("meeting", title="Team meeting"),
            make_record("milk", title="Buy milk"),
            make_record("notes", title="Notes", description="Prepare for the MEETING"),
        ]
        assert sorted(ids(run_query(records, query(q="meet")))) == ["meeting", "notes"]
        assert ids(run_query(records, query(search="MILK"))) == ["milk"]

    def test_search_prefers_search_over_q(self, make_record):
        records = [make_record("a", title="alpha"), make_record("b", title="beta")]
        assert ids(run_query(records, query(search="alp", q="bet"))) == ["a"]

    def test_blank_search_is_no_filter(self, make_record):
        records = [make_record("a"), make_record("b")]
        assert len(run_query(records, query(q="   ")).tasks) == 2

    def test_search_keeps_surrounding_spaces(self, make_record):
        records = [
            make_record("meetup", title="Meetup downtown"),
            make_record("team", title="Team meeting"),
        ]
        assert ids(run_query(records, query(q=" meet"))) == ["team"]
        assert sorted(ids(run_query(records, query(q="meet")))) == ["meetup", "team"]


@pytest.mark.unit
class TestSorting:
    """Sort keys, directions and tie-breaks."""

    def test_default_is_newest_first(self, make_record):
        records = [
            make_record("old", createdAt=1000000000000),
            make_record("new", createdAt=1700000000000),
            make_record("mid", createdAt=1500000000000),
        ]
        assert ids(run_query(records, query())) == ["new", "mid", "old"]
        assert ids(run_query(records, query(CODES))) == ["new", "mid", "old"]

    def test_created_at_ascending(self, make_record):
        records = [
            make_record("new", createdAt=1700000000000),
            make_record("undated", createdAt=None),
            make_record("old", createdAt=1000000000000),
        ]
        result = run_query(records, query(CODES, orderBy="created_at", orderDir="asc"))
        # Missing timestamps sort as epoch zero
        assert ids(result) == ["undated", "old", "new"]

    def test_updated_at(self, make_record):
        records = [
            make_record("a", updatedAt=1700000000000),
            make_record("b", updatedAt=1800000000000),
        ]
        assert ids(run_query(records, query(CODES, orderBy="updated_at"))) == ["b", "a"]
        assert ids(run_query(records, query(sort="updated_asc"))) == ["a", "b"]

    def test_codes_scheme_defaults_to_descending(self, make_record):
        records = [make_record("a", createdAt=1), make_record("b", createdAt=2)]
        assert ids(run_query(records, query(CODES, orderBy="created_at"))) == ["b", "a"]

    def test_matrix_tokens(self, make_record):
        records = [
            make_record("old", createdAt=1000000000000),
            make_record("new", createdAt=1700000000000),
        ]
        assert ids(run_query(records, query(sort="date"))) == ["old", "new"]
        assert ids(run_query(records, query(sort="date_desc"))) == ["new", "old"]
        assert ids(run_query(records, query(sort="date", order="desc"))) == ["new", "old"]
        # A direction suffix beats a separate direction parameter
        assert ids(run_query(records, query(sort="date_asc", orderDir="desc"))) == ["old", "new"]

    @pytest.mark.parametrize("direction", ["asc", "desc"])
    def test_due_date_puts_undated_last(self, make_record, direction):
        records = [
            make_record("none", dueDate=None),
            make_record("third", dueDate="2026-01-03"),
            make_record("blank", dueDate=""),
            make_record("first", dueDate="2026-01-01"),
            make_record("garbage", dueDate="next week"),
        ]
        result = run_query(records, query(CODES, orderBy="due_date", orderDir=direction))
        dated = ids(result)[:2]
        assert dated == (["first", "third"] if direction == "asc" else ["third", "first"])
        assert sorted(ids(result)[2:]) == ["blank", "garbage", "none"]

    def test_due_scenario(self, make_record):
        records = [
            make_record("b", dueDate="2026-01-03"),
            make_record("c"),
            make_record("a", dueDate="2026-01-01"),
        ]
        result = run_query(records, query(sort="due"))
        assert [t.get("dueDate") for t in result.tasks] == ["2026-01-01", "2026-01-03", None]
        result = run_query(records, query(CODES, order_by="due_date", order_dir="asc"))
        assert [t.get("dueDate") for t in result.tasks] == ["2026-01-01", "2026-01-03", None]

    def test_quadrant_rank_ignores_direction(self, make_record):
        records = [
            make_record("eliminate"),
            make_record("delegate", urgent=True),
            make_record("do-first", important=True, urgent=True),
            make_record("schedule", important=True),
        ]
        expected = ["do-first", "schedule", "delegate", "eliminate"]
        assert ids(run_query(records, query(sort="quadrant"))) == expected
        assert ids(run_query(records, query(CODES, orderBy="quadrant", orderDir="desc"))) == expected
        assert ids(run_query(records, query(sort="quadrant_desc"))) == expected[::-1]

    def test_title_ordering(self, make_record):
        records = [
            make_record("b", title="banana"),
            make_record("a", title="Apple"),
            make_record("e", title="éclair"),
            make_record("c", title="cherry"),
        ]
        result = run_query(records, query(sort="title"))
        assert ids(result) == ["a", "b", "c", "e"]
        result = run_query(records, query(CODES, orderBy="title", orderDir="desc"))
        assert ids(result) == ["e", "c", "b", "a"]

    def test_unrecognised_sort_falls_back_to_default(self, make_record):
        records = [
            make_record("old", createdAt=1000000000000),
            make_record("new", createdAt=1700000000000),
        ]
        assert ids(run_query(records, query(sort="priority"))) == ["new", "old"]
        assert ids(run_query(records, query(CODES, orderBy="nonsense"))) == ["new", "old"]

    def test_ties_broken_by_creation_then_id(self, make_record):
        records = [
            make_record("b", important=True, createdAt=5),
            make_record("a", important=True, createdAt=5),
            make_record("c", important=True, createdAt=9),
        ]
        assert ids(run_query(records, query(sort="quadrant"))) == ["c", "a", "b"]


@pytest.mark.unit
class TestPagination:
    """Clamping, page/offset equivalence and totals."""

    @pytest.fixture
    def records(self, make_record):
        return [make_record(f"t{i:03d}", createdAt=1704067200000 + i) for i in range(150)]

    def test_no_pagination_returns_everything(self, records):
        result = run_query(records, query())
        assert len(result.tasks) == 150
        assert result.total == 150
        assert result.pagination is None
        assert "pagination" not in result.to_dict()

    def test_limit_is_clamped(self, records):
        result = run_query(records, query(limit="500"))
        assert result.pagination.limit == MAX_LIMIT
        assert len(result.tasks) == 100
        assert result.total == 150

        assert query(limit="0").limit == 1
        assert query(limit="-4").limit == 1
        assert query(limit="abc").limit == 50
        assert query(offset="5").limit == 50

    def test_page_and_offset_styles_agree(self, records):
        by_page = run_query(records, query(page="2", size="10"))
        by_offset = run_query(records, query(offset="10", limit="10"))
        assert ids(by_page) == ids(by_offset)
        assert by_page.pagination.to_dict() == {"limit": 10, "offset": 10, "returned": 10}

    def test_page_takes_precedence_over_offset(self):
        assert query(page="3", offset="1", limit="20").offset == 40

    def test_limit_takes_precedence_over_size(self):
        assert query(limit="5", size="30").limit == 5

    def test_out_of_range_values(self, records):
        assert query(page="0", size="10").offset == 0
        assert query(page="-3").offset == 0
        assert query(offset="-7").offset == 0
        assert query(offset="x").offset == 0
        result = run_query(records, query(offset="140", limit="50"))
        assert result.pagination.returned == 10
        assert run_query(records, query(offset="900")).tasks == []

    def test_total_counts_search_matches_before_slicing(self, make_record):
        records = [make_record(f"m{i}", title=f"meeting {i}") for i in range(7)]
        records += [make_record(f"x{i}", title="other") for i in range(3)]
        result = run_query(records, query(q="meeting", limit="2"))
        assert result.total == 7
        assert result.to_dict()["count"] == 2


@pytest.mark.unit
class TestTimestamps:
    """Timestamp normalization for output and comparison."""

    @pytest.mark.parametrize(
        "value",
        [
            1704067200000,
            1704067200,
            "1704067200000",
            "2024-01-01T00:00:00Z",
            "2024-01-01T00:00:00+00:00",
            {"_seconds": 1704067200, "_nanoseconds": 0},
            {"seconds": 1704067200, "nanoseconds": 0},
            datetime(2024, 1, 1, tzinfo=timezone.utc),
        ],
    )
    def test_normalize_known_forms(self, value):
        assert normalize_timestamp(value) == "2024-01-01T00:00:00.000Z"

    def test_normalize_keeps_milliseconds(self):
        assert normalize_timestamp(1704067200123) == "2024-01-01T00:00:00.123Z"

    @pytest.mark.parametrize("value", [None, "", "soon", True, {"other": 1}, float("nan")])
    def test_unparseable_values(self, value):
        assert timestamp_millis(value) is None
        assert normalize_timestamp(value) is None

    @pytest.mark.parametrize("value", [10**17, -(10**17), "100000000000000000", {"_seconds": 10**15}])
    def test_out_of_range_values_normalize_to_none(self, value):
        assert normalize_timestamp(value) is None

    def test_out_of_range_timestamp_does_not_break_listing(self, make_record):
        records = [make_record("big", createdAt=10**17), make_record("ok")]
        result = run_query(records, query())
        assert sorted(ids(result)) == ["big", "ok"]
        big = next(t for t in result.tasks if t["id"] == "big")
        assert big["createdAt"] is None

    def test_output_timestamps_are_text(self, make_record):
        record = make_record("t1", deletedAt=1704067200000, status="deleted")
        task = run_query([record], query(status="deleted")).tasks[0]
        assert task["createdAt"] == "2024-01-01T00:00:00.000Z"
        assert task["deletedAt"] == "2024-01-01T00:00:00.000Z"
        assert "archivedAt" not in task

    def test_input_is_not_mutated(self, make_record):
        records = [make_record("t1", important=True), make_record("t2")]
        snapshot = copy.deepcopy(records)
        run_query(records, query(sort="quadrant", limit="1"))
        assert records == snapshot


@pytest.mark.unit
class TestMalformedInput:
    """The engine degrades gracefully instead of raising."""

    def test_garbage_parameters(self, make_record):
        records = [make_record("a"), make_record("b", urgent=True)]
        params = {
            "status": "active",
            "quadrant": "???",
            "sort": "_desc",
            "orderDir": "sideways",
            "limit": "1e9",
            "page": "NaN",
            "q": "",
        }
        result = run_query(records, TaskQuery.from_params(params, MATRIX))
        assert result.total == 2
        assert result.pagination.limit == MAX_LIMIT
        assert result.pagination.offset == 0
