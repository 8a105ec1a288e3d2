"""Tests for the reactive primitives."""

from unittest.mock import Mock

from shotclock.core.reactive import (
    CompositeDisposable,
    Disposable,
    ReactiveProperty,
    Subject,
    merge,
    never,
    timer,
)
from shotclock.core.scheduler import VirtualScheduler


class TestDisposable:
    """Test Disposable and CompositeDisposable."""

    def test_dispose_runs_action_once(self) -> None:
        """Test that the release action runs only on the first dispose."""
        action = Mock()
        disposable = Disposable(action)

        disposable.dispose()
        disposable.dispose()

        action.assert_called_once()
        assert disposable.is_disposed

    def test_composite_disposes_members(self) -> None:
        """Test that disposing a composite disposes every member."""
        first, second = Mock(), Mock()
        composite = CompositeDisposable(Disposable(first))
        composite.add(Disposable(second))

        composite.dispose()

        first.assert_called_once()
        second.assert_called_once()

    def test_composite_add_after_dispose(self) -> None:
        """Test that items added to a disposed composite are disposed at once."""
        composite = CompositeDisposable()
        composite.dispose()

        late = Disposable()
        composite.add(late)

        assert late.is_disposed


class TestSubject:
    """Test Subject."""

    def test_multicast(self) -> None:
        """Test that every subscriber receives each value."""
        subject: Subject[int] = Subject()
        first, second = [], []
        subject.subscribe(first.append)
        subject.subscribe(second.append)

        subject.on_next(1)
        subject.on_next(2)

        assert first == [1, 2]
        assert second == [1, 2]

    def test_unsubscribe(self) -> None:
        """Test that a disposed subscription stops receiving values."""
        subject: Subject[int] = Subject()
        received = []
        subscription = subject.subscribe(received.append)

        subject.on_next(1)
        subscription.dispose()
        subject.on_next(2)

        assert received == [1]
        assert not subject.has_observers

    def test_dispose_releases_observers(self) -> None:
        """Test that disposing the subject drops all observers."""
        subject: Subject[int] = Subject()
        received = []
        subject.subscribe(received.append)

        subject.dispose()
        subject.on_next(1)
        subject.subscribe(received.append)

        assert received == []
        assert not subject.has_observers


class TestOperators:
    """Test observable operators."""

    def test_map_and_filter(self) -> None:
        """Test map and filter composition."""
        subject: Subject[int] = Subject()
        received = []
        subject.filter(lambda x: x % 2 == 0).map(lambda x: x * 10).subscribe(received.append)

        for value in range(5):
            subject.on_next(value)

        assert received == [0, 20, 40]

    def test_merge(self) -> None:
        """Test that merge interleaves values from all sources."""
        left: Subject[str] = Subject()
        right: Subject[str] = Subject()
        received = []
        subscription = merge(left, right, never()).subscribe(received.append)

        left.on_next("a")
        right.on_next("b")
        left.on_next("c")
        subscription.dispose()
        right.on_next("d")

        assert received == ["a", "b", "c"]
        assert not left.has_observers
        assert not right.has_observers

    def test_observe_on_defers_to_scheduler(self, scheduler: VirtualScheduler) -> None:
        """Test that observe_on delivers only when the scheduler runs."""
        subject: Subject[int] = Subject()
        received = []
        subject.observe_on(scheduler).subscribe(received.append)

        subject.on_next(1)
        assert received == []

        scheduler.run_pending()
        assert received == [1]

    def test_observe_on_drops_values_after_dispose(self, scheduler: VirtualScheduler) -> None:
        """Test that queued values are not delivered after disposal."""
        subject: Subject[int] = Subject()
        received = []
        subscription = subject.observe_on(scheduler).subscribe(received.append)

        subject.on_next(1)
        subscription.dispose()
        scheduler.run_pending()

        assert received == []

    def test_debounce_collapses_burst(self, scheduler: VirtualScheduler) -> None:
        """Test that three events within 200ms produce one emission."""
        subject: Subject[str] = Subject()
        received = []
        subject.debounce(1.2, scheduler).subscribe(received.append)

        subject.on_next("a")
        scheduler.advance_by(0.1)
        subject.on_next("b")
        scheduler.advance_by(0.1)
        subject.on_next("c")

        scheduler.advance_by(1.1)
        assert received == []

        scheduler.advance_by(0.2)
        assert received == ["c"]

        scheduler.advance_by(10)
        assert received == ["c"]

    def test_debounce_separate_bursts(self, scheduler: VirtualScheduler) -> None:
        """Test that bursts separated by a quiet window emit separately."""
        subject: Subject[int] = Subject()
        received = []
        subject.debounce(1.2, scheduler).subscribe(received.append)

        subject.on_next(1)
        scheduler.advance_by(2)
        subject.on_next(2)
        scheduler.advance_by(2)

        assert received == [1, 2]

    def test_debounce_dispose_cancels_pending(self, scheduler: VirtualScheduler) -> None:
        """Test that disposing a debounce drops the pending emission."""
        subject: Subject[int] = Subject()
        received = []
        subscription = subject.debounce(1.2, scheduler).subscribe(received.append)

        subject.on_next(1)
        subscription.dispose()
        scheduler.advance_by(5)

        assert received == []
        assert not subject.has_observers

    def test_timer_fires_immediately_then_periodically(
        self, scheduler: VirtualScheduler
    ) -> None:
        """Test timer(0, 1) emission schedule."""
        received = []
        subscription = timer(0.0, 1.0, scheduler).subscribe(received.append)

        scheduler.run_pending()
        assert received == [0]

        scheduler.advance_by(3)
        assert received == [0, 1, 2, 3]

        subscription.dispose()
        scheduler.advance_by(3)
        assert received == [0, 1, 2, 3]


class TestReactiveProperty:
    """Test ReactiveProperty."""

    def test_initial_value(self) -> None:
        """Test property exposes its initial value."""
        prop = ReactiveProperty(5)
        assert prop.value == 5

    def test_changed_fires_on_distinct_values_only(self) -> None:
        """Test that publishing an equal value does not notify."""
        prop = ReactiveProperty(1)
        received = []
        prop.changed.subscribe(received.append)

        assert prop.publish(2) is True
        assert prop.publish(2) is False
        prop.publish(3)

        assert received == [2, 3]
        assert prop.value == 3

    def test_subscribe_replays_current_value(self) -> None:
        """Test that subscribe delivers the current value first."""
        prop = ReactiveProperty("a")
        received = []
        prop.subscribe(received.append)

        prop.publish("b")

        assert received == ["a", "b"]

    def test_dispose_stops_notifications(self) -> None:
        """Test that a disposed property notifies nobody."""
        prop = ReactiveProperty(0)
        received = []
        prop.changed.subscribe(received.append)

        prop.dispose()
        prop.publish(1)

        assert received == []
