"""
事件总线单元测试
"""
import pytest

from app.services.event_bus import EventBus, Event


class TestEventBus:
    """事件总线测试"""

    @pytest.fixture
    def bus(self):
        """创建新的事件总线实例"""
        return EventBus(history_size=5)

    @pytest.fixture
    def sample_event(self):
        """创建示例事件"""
        return Event(event_type="test.event", data={"key": "value"}, source="test")

    def test_subscribe_and_publish(self, bus, sample_event):
        """测试订阅和发布"""
        received_events = []
        bus.subscribe("test.event", received_events.append)

        delivered = bus.publish(sample_event)

        assert delivered == 1
        assert len(received_events) == 1
        assert received_events[0].data["key"] == "value"

    def test_subscribe_same_handler_twice(self, bus, sample_event):
        """同一处理器重复订阅只调用一次"""
        received_events = []

        def handler(event):
            received_events.append(event)

        bus.subscribe("test.event", handler)
        bus.subscribe("test.event", handler)
        bus.publish(sample_event)

        assert len(received_events) == 1

    def test_unsubscribe(self, bus, sample_event):
        """测试取消订阅"""
        received_events = []

        def handler(event):
            received_events.append(event)

        bus.subscribe("test.event", handler)
        bus.unsubscribe("test.event", handler)
        bus.publish(sample_event)

        assert received_events == []

    def test_wildcard_subscriber(self, bus, sample_event):
        """测试通配订阅"""
        received_events = []
        bus.subscribe("*", received_events.append)

        bus.publish(sample_event)
        bus.publish(Event(event_type="other.event", data={}, source="test"))

        assert [e.event_type for e in received_events] == ["test.event", "other.event"]

    def test_handler_exception_isolation(self, bus, sample_event):
        """测试处理器异常隔离"""
        successful_calls = []

        def failing_handler(event):
            raise RuntimeError("boom")

        bus.subscribe("test.event", failing_handler)
        bus.subscribe("test.event", successful_calls.append)

        delivered = bus.publish(sample_event)

        assert delivered == 1
        assert len(successful_calls) == 1

    def test_history_is_bounded_and_newest_first(self, bus):
        """测试历史记录"""
        for i in range(7):
            bus.publish(Event(event_type="test.event", data={"i": i}, source="test"))

        history = bus.get_history()
        assert len(history) == 5
        assert history[0].data["i"] == 6

    def test_history_filter_by_type(self, bus, sample_event):
        bus.publish(sample_event)
        bus.publish(Event(event_type="other.event", data={}, source="test"))

        assert len(bus.get_history("other.event")) == 1

    def test_clear(self, bus, sample_event):
        received_events = []
        bus.subscribe("test.event", received_events.append)
        bus.publish(sample_event)

        bus.clear()
        bus.publish(sample_event)

        assert len(received_events) == 1
        assert len(bus.get_history()) == 1

    def test_event_ids_are_unique(self):
        first = Event(event_type="a", data={}, source="test")
        second = Event(event_type="a", data={}, source="test")
        assert first.event_id != second.event_id
