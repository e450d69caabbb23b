"""
Tests for BatchDispatcher.
"""

from unittest.mock import AsyncMock, patch

import pytest

from segment_blast.services.dispatch import BatchDispatcher
from segment_blast.services.line_providers import ProviderType, SendResult
from segment_blast.services.roster import RosterRepository
from tests.fakes import FakeProvider, MockDatabase, ledger_row, user_id

KEY = "buyers_thanks_3d"


def _setup(count: int, provider: FakeProvider = None, batch_size: int = 500):
    ids = [user_id(i) for i in range(count)]
    db = MockDatabase({"segment_blast": [ledger_row(KEY, uid) for uid in ids]})
    provider = provider or FakeProvider()
    dispatcher = BatchDispatcher(RosterRepository(db), provider, batch_size=batch_size, sleep_ms=0)
    return ids, db, provider, dispatcher


class TestPlan:
    """Chunking."""

    @pytest.mark.parametrize("count,size,expected", [(1200, 500, [500, 500, 200]), (500, 500, [500]), (3, 2, [2, 1])])
    def test_chunk_sizes(self, count, size, expected):
        """ceil(N/B) chunks of at most B, covering the input in order."""
        ids, _, _, dispatcher = _setup(count, batch_size=size)

        plan = dispatcher.plan(ids)

        assert [len(chunk) for chunk in plan.chunks] == expected
        flattened = [uid for chunk in plan.chunks for uid in chunk]
        assert flattened == ids

    def test_duplicates_dropped(self):
        """Duplicate ids are planned once."""
        _, _, _, dispatcher = _setup(0)

        plan = dispatcher.plan([user_id(1), user_id(1), user_id(2)])

        assert plan.total == 2
        assert plan.batches == 1

    def test_batch_size_clamped_to_provider_limit(self):
        """Batch size never exceeds the provider limit."""
        dispatcher = BatchDispatcher(RosterRepository(MockDatabase()), FakeProvider(max_recipients=500), batch_size=900)
        assert dispatcher.batch_size == 500

    def test_push_provider_forces_single_recipient(self):
        """Push providers dispatch one recipient per call."""
        provider = FakeProvider(max_recipients=1, provider_type=ProviderType.PUSH)
        dispatcher = BatchDispatcher(RosterRepository(MockDatabase()), provider, batch_size=500)
        assert dispatcher.batch_size == 1


class TestDispatch:
    """Sequential sends with per-chunk bookkeeping."""

    @pytest.mark.asyncio
    async def test_all_chunks_sent_and_marked(self, text_messages):
        """Every chunk is sent and its rows marked sent."""
        ids, db, provider, dispatcher = _setup(1200)

        result = await dispatcher.dispatch(KEY, ids, text_messages)

        assert [len(call["user_ids"]) for call in provider.calls] == [500, 500, 200]
        assert result.planned_batches == result.attempted_batches == 3
        assert result.sent == 1200
        assert all(row["sent_at"] is not None for row in db.ledger(KEY).values())

    @pytest.mark.asyncio
    async def test_failed_chunk_does_not_stop_later_chunks(self, text_messages):
        """A failed chunk keeps its error and later chunks still go out."""
        ids, db, provider, dispatcher = _setup(1200, provider=FakeProvider(fail_calls={2}))

        result = await dispatcher.dispatch(KEY, ids, text_messages)

        assert len(provider.calls) == 3
        assert result.sent == 700
        assert result.failed == 500
        assert result.errors == ["LINE multicast failed: 500 boom"]

        ledger = db.ledger(KEY)
        failed_chunk = provider.calls[1]["user_ids"]
        for uid in failed_chunk:
            assert ledger[uid]["sent_at"] is None
            assert ledger[uid]["last_error"] == "LINE multicast failed: 500 boom"
        for uid in provider.calls[0]["user_ids"] + provider.calls[2]["user_ids"]:
            assert ledger[uid]["sent_at"] is not None

    @pytest.mark.asyncio
    async def test_provider_exception_counts_as_failed_chunk(self, text_messages):
        """An exception from the provider fails only that chunk."""
        ids, db, provider, dispatcher = _setup(3, batch_size=2)
        provider.send = AsyncMock(side_effect=[RuntimeError("socket closed"), SendResult(success=True)])

        result = await dispatcher.dispatch(KEY, ids, text_messages)

        assert result.attempted_batches == 2
        assert result.failed == 2
        assert result.sent == 1
        assert db.ledger(KEY)[ids[0]]["last_error"] == "socket closed"

    @pytest.mark.asyncio
    async def test_dry_run_makes_no_calls_or_writes(self, text_messages):
        """Dry run plans without calling the provider or writing."""
        ids, db, provider, dispatcher = _setup(1200)

        result = await dispatcher.dispatch(KEY, ids, text_messages, dry_run=True)

        assert provider.calls == []
        assert result.dry_run is True
        assert result.planned_batches == 3
        assert result.attempted_batches == 0
        assert ("segment_blast", "update") not in db.executed

    @pytest.mark.asyncio
    async def test_each_chunk_has_its_own_retry_key(self, text_messages):
        """Every call carries a distinct retry key."""
        ids, _, provider, dispatcher = _setup(5, batch_size=2)

        await dispatcher.dispatch(KEY, ids, text_messages)

        keys = [call["retry_key"] for call in provider.calls]
        assert len(keys) == 3
        assert len(set(keys)) == 3
        assert all(keys)

    @pytest.mark.asyncio
    async def test_personalized_sends_one_recipient_per_call(self, text_messages):
        """Personalized payloads are sent one recipient at a time."""
        ids, _, provider, dispatcher = _setup(3)

        async def personalize(uid):
            return [{"type": "text", "text": f"hi {uid[-1]}"}]

        result = await dispatcher.dispatch(KEY, ids, text_messages, personalize=personalize)

        assert [call["user_ids"] for call in provider.calls] == [[uid] for uid in ids]
        assert provider.calls[2]["messages"] == [{"type": "text", "text": "hi 2"}]
        assert result.sent == 3

    @pytest.mark.asyncio
    async def test_sleeps_between_chunks_only(self, text_messages):
        """The delay runs between chunks, not before the first."""
        ids = [user_id(i) for i in range(5)]
        db = MockDatabase({"segment_blast": [ledger_row(KEY, uid) for uid in ids]})
        dispatcher = BatchDispatcher(RosterRepository(db), FakeProvider(), batch_size=2, sleep_ms=250)

        with patch("segment_blast.services.dispatch.dispatcher.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            await dispatcher.dispatch(KEY, ids, text_messages)

        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(0.25)

    @pytest.mark.asyncio
    async def test_already_sent_rows_are_not_counted_again(self, text_messages):
        """Rows already sent are not counted or rewritten."""
        ids, db, provider, dispatcher = _setup(2)
        db.ledger(KEY)[ids[0]]["sent_at"] = "2026-03-01T00:00:00+00:00"

        result = await dispatcher.dispatch(KEY, ids, text_messages)

        assert result.sent == 1
        assert db.ledger(KEY)[ids[0]]["sent_at"] == "2026-03-01T00:00:00+00:00"
