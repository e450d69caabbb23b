"""
Tests for RosterRepository.

Runs against the in-memory MockDatabase so ledger state can be asserted
directly.
"""

from datetime import timedelta

import pytest

from segment_blast.core.exceptions import DatabaseError
from segment_blast.services.roster import RosterRepository, truncate_error
from tests.fakes import NOW, MockDatabase, days_ago, ledger_row, user_id

KEY = "buyers_thanks_3d"


@pytest.fixture
def repo(mock_db):
    return RosterRepository(mock_db)


class TestReconcile:
    """Insert-if-absent."""

    @pytest.mark.asyncio
    async def test_creates_missing_rows(self, repo, mock_db):
        """New ids get unsent rows."""
        created = await repo.reconcile(KEY, [user_id(1), user_id(2)])

        assert created == 2
        ledger = mock_db.ledger(KEY)
        assert set(ledger) == {user_id(1), user_id(2)}
        assert all(row["sent_at"] is None and row["last_error"] is None for row in ledger.values())

    @pytest.mark.asyncio
    async def test_is_idempotent(self, repo, mock_db):
        """Reconciling again only adds the new ids."""
        await repo.reconcile(KEY, [user_id(1), user_id(2)])
        created = await repo.reconcile(KEY, [user_id(1), user_id(2), user_id(3)])

        assert created == 1
        assert len(mock_db.ledger(KEY)) == 3

    @pytest.mark.asyncio
    async def test_does_not_touch_existing_rows(self):
        """Existing rows keep their sent_at."""
        db = MockDatabase({"segment_blast": [ledger_row(KEY, user_id(1), sent_at=days_ago(1))]})
        repo = RosterRepository(db)

        created = await repo.reconcile(KEY, [user_id(1)])

        assert created == 0
        assert db.ledger(KEY)[user_id(1)]["sent_at"] == days_ago(1)

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, repo, mock_db):
        """The same user gets a row per key."""
        await repo.reconcile(KEY, [user_id(1)])
        created = await repo.reconcile("monthly_1st_202603", [user_id(1)])

        assert created == 1
        assert len(mock_db.rows("segment_blast")) == 2

    @pytest.mark.asyncio
    async def test_dedupes_and_skips_empty(self, repo):
        """Duplicates and empty ids are skipped."""
        assert await repo.reconcile(KEY, [user_id(1), user_id(1), "", None]) == 1

    @pytest.mark.asyncio
    async def test_empty_input(self, repo, mock_db):
        """No ids means no queries."""
        assert await repo.reconcile(KEY, []) == 0
        assert mock_db.executed == []


class TestLoadUnsent:
    """Unsent rows."""

    @pytest.mark.asyncio
    async def test_returns_only_unsent_in_user_id_order(self):
        """Only unsent rows of the key, ordered by user_id."""
        db = MockDatabase({"segment_blast": [
            ledger_row(KEY, user_id(3)),
            ledger_row(KEY, user_id(1)),
            ledger_row(KEY, user_id(2), sent_at=days_ago(1)),
            ledger_row("other", user_id(4)),
        ]})

        entries = await RosterRepository(db).load_unsent(KEY)

        assert [e.user_id for e in entries] == [user_id(1), user_id(3)]
        assert all(not e.is_sent for e in entries)

    @pytest.mark.asyncio
    async def test_limit_and_paging(self):
        """Large rosters are paged and capped by limit."""
        db = MockDatabase({"segment_blast": [ledger_row(KEY, user_id(i)) for i in range(2500)]})

        entries = await RosterRepository(db).load_unsent(KEY, limit=2100)

        assert len(entries) == 2100
        assert [c[1] for c in db.range_calls] == [0, 1000, 2000]


class TestMarkSent:
    """sent_at transitions."""

    @pytest.mark.asyncio
    async def test_sets_sent_at_and_clears_error(self):
        """Sending sets sent_at and clears last_error."""
        db = MockDatabase({"segment_blast": [ledger_row(KEY, user_id(1), last_error="SEND_FAILED")]})

        updated = await RosterRepository(db).mark_sent(KEY, [user_id(1)])

        row = db.ledger(KEY)[user_id(1)]
        assert updated == 1
        assert row["sent_at"] is not None
        assert row["last_error"] is None

    @pytest.mark.asyncio
    async def test_never_rewrites_sent_at(self):
        """sent_at is never rewritten."""
        first = days_ago(3)
        db = MockDatabase({"segment_blast": [ledger_row(KEY, user_id(1), sent_at=first)]})

        updated = await RosterRepository(db).mark_sent(KEY, [user_id(1)])

        assert updated == 0
        assert db.ledger(KEY)[user_id(1)]["sent_at"] == first

    @pytest.mark.asyncio
    async def test_splits_large_id_lists(self):
        """Id filters are split into slices of 100."""
        db = MockDatabase({"segment_blast": [ledger_row(KEY, user_id(i)) for i in range(250)]})

        updated = await RosterRepository(db).mark_sent(KEY, [user_id(i) for i in range(250)])

        assert updated == 250
        assert db.executed.count(("segment_blast", "update")) == 3


class TestMarkFailed:
    """last_error writes."""

    @pytest.mark.asyncio
    async def test_records_error_without_sent_at(self):
        """Failures record last_error and leave sent_at null."""
        db = MockDatabase({"segment_blast": [ledger_row(KEY, user_id(1))]})

        await RosterRepository(db).mark_failed(KEY, [user_id(1)], "LINE multicast failed: 500")

        row = db.ledger(KEY)[user_id(1)]
        assert row["sent_at"] is None
        assert row["last_error"] == "LINE multicast failed: 500"

    @pytest.mark.asyncio
    async def test_ignores_sent_rows(self):
        """Sent rows never get an error."""
        db = MockDatabase({"segment_blast": [ledger_row(KEY, user_id(1), sent_at=days_ago(1))]})

        updated = await RosterRepository(db).mark_failed(KEY, [user_id(1)], "boom")

        assert updated == 0
        assert db.ledger(KEY)[user_id(1)]["last_error"] is None

    def test_truncate_error(self):
        """Error text is bounded and never empty."""
        assert truncate_error(None) == "SEND_FAILED"
        assert truncate_error("   ") == "SEND_FAILED"
        assert len(truncate_error("x" * 2000)) == 500
        assert truncate_error(ValueError("bad")) == "bad"


class TestEnsureSingle:
    """Forced recipient row."""

    @pytest.mark.asyncio
    async def test_creates_once(self, repo, mock_db):
        """ensure_single creates the row only once."""
        assert await repo.ensure_single(KEY, user_id(9)) is True
        assert await repo.ensure_single(KEY, user_id(9)) is False
        assert len(mock_db.ledger(KEY)) == 1


class TestSentUserIds:
    """Lookups used by the exclusion filters."""

    @pytest.fixture
    def db(self):
        return MockDatabase({"segment_blast": [
            ledger_row("buyers_thanks_3d", user_id(1), sent_at=days_ago(10)),
            ledger_row("spring_2026", user_id(2), sent_at=days_ago(0.5)),
            ledger_row("monthly_1st_202602", user_id(3), sent_at=days_ago(40)),
            ledger_row("monthly_1st_202603", user_id(4)),
        ]})

    @pytest.mark.asyncio
    async def test_any_key(self, db):
        """Without keys, a send under any key counts."""
        ids = [user_id(i) for i in range(1, 6)]
        found = await RosterRepository(db).sent_user_ids(ids)
        assert found == {user_id(1), user_id(2), user_id(3)}

    @pytest.mark.asyncio
    async def test_listed_keys(self, db):
        """Only sends under the listed keys count."""
        ids = [user_id(i) for i in range(1, 6)]
        found = await RosterRepository(db).sent_user_ids(ids, segment_keys=["monthly_1st_202602"])
        assert found == {user_id(3)}

    @pytest.mark.asyncio
    async def test_empty_key_list_matches_nothing(self, db):
        """An empty key list matches nothing."""
        found = await RosterRepository(db).sent_user_ids([user_id(1)], segment_keys=[])
        assert found == set()

    @pytest.mark.asyncio
    async def test_key_pattern(self, db):
        """Only sends under keys matching the regex count."""
        ids = [user_id(i) for i in range(1, 6)]
        found = await RosterRepository(db).sent_user_ids(ids, key_pattern="(buyers|2026)")
        assert found == {user_id(1), user_id(2)}

    @pytest.mark.asyncio
    async def test_since(self, db):
        """Only sends at or after since count."""
        ids = [user_id(i) for i in range(1, 6)]
        found = await RosterRepository(db).sent_user_ids(ids, since=NOW - timedelta(hours=24))
        assert found == {user_id(2)}


class TestCountSummary:
    """Ledger counts."""

    @pytest.mark.asyncio
    async def test_counts(self):
        """Counts total, sent, unsent and errored rows of one key."""
        db = MockDatabase({"segment_blast": [
            ledger_row(KEY, user_id(1), sent_at=days_ago(1)),
            ledger_row(KEY, user_id(2), last_error="SEND_FAILED"),
            ledger_row(KEY, user_id(3)),
            ledger_row("other", user_id(4)),
        ]})

        counts = await RosterRepository(db).count_summary(KEY)

        assert (counts.total, counts.sent, counts.unsent, counts.errored) == (3, 1, 2, 1)


class TestErrors:
    """Failures surface as DatabaseError."""

    @pytest.mark.asyncio
    async def test_wraps_client_errors(self):
        """Client errors surface as DatabaseError."""
        db = MockDatabase(fail_tables={"segment_blast"})

        with pytest.raises(DatabaseError) as exc_info:
            await RosterRepository(db).reconcile(KEY, [user_id(1)])

        assert isinstance(exc_info.value.original_error, Exception)
