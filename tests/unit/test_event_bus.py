# =============================================================================
# tests/unit/test_event_bus.py
# Unit Tests for ChangeNotificationBus
# =============================================================================

from pharmacare_core.offline.event_bus import ChangeNotificationBus, collection_topic


class TestChangeNotificationBus:
    """Synchronous in-process publish/subscribe"""

    def test_collection_topic(self):
        assert collection_topic("medicines") == "medicinesUpdated"

    def test_delivery_in_registration_order(self, bus):
        calls = []
        bus.subscribe("salesUpdated", lambda p: calls.append(("first", p)))
        bus.subscribe("salesUpdated", lambda p: calls.append(("second", p)))

        delivered = bus.publish("salesUpdated", {"id": "1"})

        assert delivered == 2
        assert calls == [("first", {"id": "1"}), ("second", {"id": "1"})]

    def test_topics_are_isolated(self, bus):
        calls = []
        bus.subscribe("patientsUpdated", calls.append)
        bus.publish("medicinesUpdated", [])
        assert calls == []

    def test_unsubscribe_is_idempotent(self, bus):
        calls = []
        unsubscribe = bus.subscribe("salesUpdated", calls.append)

        unsubscribe()
        unsubscribe()
        bus.publish("salesUpdated", 1)

        assert calls == []
        assert bus.subscriber_count("salesUpdated") == 0

    def test_no_replay_for_late_subscribers(self, bus):
        bus.publish("salesUpdated", 1)
        calls = []
        bus.subscribe("salesUpdated", calls.append)
        assert calls == []

    def test_failing_handler_does_not_stop_delivery(self, bus):
        calls = []

        def broken(_):
            raise RuntimeError("boom")

        bus.subscribe("salesUpdated", broken)
        bus.subscribe("salesUpdated", calls.append)

        bus.publish("salesUpdated", "payload")

        assert calls == ["payload"]

    def test_unsubscribe_during_publish(self, bus):
        """Handlers registered at publish time all run"""
        calls = []
        unsubscribe_second = None

        def first(payload):
            calls.append("first")
            unsubscribe_second()

        bus.subscribe("salesUpdated", first)
        unsubscribe_second = bus.subscribe("salesUpdated", lambda p: calls.append("second"))

        bus.publish("salesUpdated")
        bus.publish("salesUpdated")

        assert calls == ["first", "second", "first"]

    def test_clear(self):
        bus = ChangeNotificationBus()
        bus.subscribe("a", print)
        bus.clear()
        assert bus.subscriber_count("a") == 0
