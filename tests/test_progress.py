"""Tests for progress state and subscriber fan-out."""

from __future__ import annotations

import threading

import pytest

from kiln.scraper.progress import (
    ProgressBroadcaster,
    ProgressState,
    ProgressStatus,
    Subscription,
    SubscriptionClosed,
)


@pytest.fixture()
def broadcaster() -> ProgressBroadcaster:
    return ProgressBroadcaster(buffer_size=10)


class TestProgressState:
    def test_to_event_is_flat(self) -> None:
        state = ProgressState(
            status=ProgressStatus.EXTRACTING,
            message="Saved article 1/2 (1 new)",
            current_item=1,
            total_items=2,
            articles_added=1,
            new_article_id=7,
        )
        assert state.to_event() == {
            "status": "extracting",
            "message": "Saved article 1/2 (1 new)",
            "current_item": 1,
            "total_items": 2,
            "articles_added": 1,
            "new_article_id": 7,
        }

    def test_terminal_statuses(self) -> None:
        terminal = {s for s in ProgressStatus if s.is_terminal}
        assert terminal == {ProgressStatus.COMPLETED, ProgressStatus.FAILED, ProgressStatus.CANCELLED}


class TestSubscription:
    def test_get_times_out_with_none(self) -> None:
        assert Subscription().get(timeout=0.05) is None

    def test_offer_refused_when_full(self) -> None:
        sub = Subscription(maxsize=1)
        assert sub.offer(ProgressState()) is True
        assert sub.offer(ProgressState()) is False

    def test_queued_items_delivered_after_close(self) -> None:
        sub = Subscription()
        sub.offer(ProgressState(message="last"))
        sub.close()
        assert sub.get(timeout=1).message == "last"
        with pytest.raises(SubscriptionClosed):
            sub.get(timeout=1)

    def test_offer_refused_after_close(self) -> None:
        sub = Subscription()
        sub.close()
        assert sub.offer(ProgressState()) is False


class TestSubscribe:
    def test_first_message_is_snapshot(self, broadcaster) -> None:
        broadcaster.try_activate("Initializing browser...")
        broadcaster.set_status(ProgressStatus.AUTHENTICATING, "Logging in...")
        sub = broadcaster.subscribe()
        first = sub.get(timeout=1)
        assert first.status is ProgressStatus.AUTHENTICATING
        assert first.message == "Logging in..."

    def test_mid_run_subscriber_sees_later_updates_in_order(self, broadcaster) -> None:
        broadcaster.try_activate()
        broadcaster.set_status(ProgressStatus.EXTRACTING, "go")
        sub = broadcaster.subscribe()
        broadcaster.set_progress(1, 3, "one")
        broadcaster.set_progress(2, 3, "two")
        assert [s.message for s in sub.drain()] == ["go", "one", "two"]

    def test_full_subscriber_drops_without_blocking_others(self, broadcaster) -> None:
        broadcaster.try_activate()
        slow = broadcaster.subscribe(maxsize=2)
        fast = broadcaster.subscribe(maxsize=100)
        for i in range(1, 6):
            broadcaster.set_progress(i, 5, f"item {i}")
        assert len(slow.drain()) == 2
        assert [s.current_item for s in fast.drain()] == [0, 1, 2, 3, 4, 5]

    def test_unsubscribe_closes(self, broadcaster) -> None:
        sub = broadcaster.subscribe()
        broadcaster.unsubscribe(sub)
        assert sub.closed is True
        assert broadcaster.subscriber_count == 0
        broadcaster.unsubscribe(sub)

    def test_reset_closes_all_and_returns_to_idle(self, broadcaster) -> None:
        broadcaster.try_activate("x")
        broadcaster.set_progress(2, 4, "half")
        subs = [broadcaster.subscribe() for _ in range(3)]
        broadcaster.reset()
        assert all(s.closed for s in subs)
        assert broadcaster.subscriber_count == 0
        assert broadcaster.is_active() is False
        assert broadcaster.snapshot().current_item == 0
        assert broadcaster.snapshot().status is ProgressStatus.STARTING


class TestTransitions:
    def test_try_activate_is_exclusive(self, broadcaster) -> None:
        assert broadcaster.try_activate() is True
        assert broadcaster.try_activate() is False
        broadcaster.deactivate()
        assert broadcaster.try_activate() is True

    def test_try_activate_starts_fresh(self, broadcaster) -> None:
        broadcaster.try_activate()
        broadcaster.set_progress(3, 3, "done")
        broadcaster.increment_persisted(1)
        broadcaster.set_status(ProgressStatus.COMPLETED, "Completed!")
        broadcaster.deactivate()
        broadcaster.try_activate("again")
        state = broadcaster.snapshot()
        assert state.status is ProgressStatus.STARTING
        assert (state.current_item, state.total_items, state.articles_added) == (0, 0, 0)

    def test_concurrent_activation_admits_exactly_one(self, broadcaster) -> None:
        results: list[bool] = []
        barrier = threading.Barrier(8)

        def claim() -> None:
            barrier.wait()
            results.append(broadcaster.try_activate())

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1

    def test_terminal_status_is_final(self, broadcaster) -> None:
        broadcaster.try_activate()
        broadcaster.set_status(ProgressStatus.FAILED, "Login failed: nope")
        with pytest.raises(ValueError):
            broadcaster.set_status(ProgressStatus.EXTRACTING, "again")

    def test_status_cannot_go_backwards(self, broadcaster) -> None:
        broadcaster.try_activate()
        broadcaster.set_status(ProgressStatus.DISCOVERING, "d")
        with pytest.raises(ValueError):
            broadcaster.set_status(ProgressStatus.AUTHENTICATING, "a")

    def test_current_item_cannot_decrease(self, broadcaster) -> None:
        broadcaster.try_activate()
        broadcaster.set_progress(2, 5, "two")
        with pytest.raises(ValueError):
            broadcaster.set_progress(1, 5, "one")

    def test_increment_persisted_counts_and_announces_id(self, broadcaster) -> None:
        broadcaster.try_activate()
        for article_id in (11, 12, 13):
            broadcaster.increment_persisted(article_id)
        state = broadcaster.snapshot()
        assert state.articles_added == 3
        assert state.new_article_id == 13

    def test_new_article_id_cleared_by_next_update(self, broadcaster) -> None:
        broadcaster.try_activate()
        broadcaster.increment_persisted(5, "saved")
        assert broadcaster.set_progress(1, 2, "next").new_article_id is None
