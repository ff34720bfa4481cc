# =============================================================================
# tests/unit/test_change_notifier.py
# Unit Tests for ChangeNotifier
# =============================================================================

import pytest

from medbuddy_core.offline import ChangeNotifier


class TestChangeNotifierDelivery:
    """Test listener delivery"""

    def test_listeners_called_in_registration_order(self, notifier):
        calls = []
        notifier.subscribe(lambda: calls.append("first"))
        notifier.subscribe(lambda: calls.append("second"))

        notifier.publish()

        assert calls == ["first", "second"]

    def test_failing_listener_does_not_stop_others(self, notifier):
        calls = []

        def broken():
            raise RuntimeError("listener bug")

        notifier.subscribe(broken)
        notifier.subscribe(lambda: calls.append("after"))

        notifier.publish()

        assert calls == ["after"]

    def test_publish_without_listeners_is_noop(self, notifier):
        notifier.publish()

        assert notifier.listener_count == 0

    def test_listener_added_during_publish_waits_for_next_event(self, notifier):
        calls = []

        def late():
            calls.append("late")

        def registering():
            calls.append("registering")
            notifier.subscribe(late)

        notifier.subscribe(registering)

        notifier.publish()
        assert calls == ["registering"]

        notifier.publish()
        assert calls.count("late") == 1


class TestChangeNotifierUnsubscribe:
    """Test unsubscribe handles"""

    def test_unsubscribe_stops_delivery(self, notifier):
        calls = []
        unsubscribe = notifier.subscribe(lambda: calls.append(1))

        unsubscribe()
        notifier.publish()

        assert calls == []
        assert notifier.listener_count == 0

    def test_unsubscribe_twice_is_harmless(self, notifier):
        unsubscribe = notifier.subscribe(lambda: None)

        unsubscribe()
        unsubscribe()

        assert notifier.listener_count == 0

    def test_same_function_registered_twice_removed_independently(self, notifier):
        calls = []

        def listener():
            calls.append(1)

        first = notifier.subscribe(listener)
        notifier.subscribe(listener)

        first()
        notifier.publish()

        assert calls == [1]
