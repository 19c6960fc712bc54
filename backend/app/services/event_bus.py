"""
事件总线 - 内存级发布/订阅
服务层发布领域事件，处理器（如通知）订阅；处理器失败只记录日志，不回传给发布方
"""
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import logging
import threading
import uuid

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], None]


@dataclass
class Event:
    """领域事件"""
    event_type: str
    data: Dict[str, Any]
    source: str  # 触发来源（服务名）
    timestamp: datetime = field(default_factory=datetime.now)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class EventBus:
    """
    内存级事件总线（线程安全）

    使用方式：
    1. 订阅事件：event_bus.subscribe("booking.status_changed", handler)
    2. 发布事件：event_bus.publish(Event(...))
    3. 订阅全部事件：event_bus.subscribe("*", handler)
    """

    WILDCARD = "*"

    def __init__(self, history_size: int = 100):
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._history: deque = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.debug(f"Handler {getattr(handler, '__name__', handler)} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> int:
        """
        发布事件（同步调用处理器）

        处理器异常被隔离，不影响其他处理器，也不影响发布方。

        Returns:
            成功执行的处理器数量
        """
        self._history.append(event)

        with self._lock:
            handlers = list(self._subscribers.get(event.event_type, []))
            handlers += [h for h in self._subscribers.get(self.WILDCARD, []) if h not in handlers]

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Event handler {getattr(handler, '__name__', handler)} failed for {event.event_type}: {e}",
                    exc_info=True
                )
        return delivered

    def get_history(self, event_type: Optional[str] = None, limit: int = 50) -> List[Event]:
        """获取事件历史（最新的在前）"""
        history = list(self._history)
        if event_type:
            history = [e for e in history if e.event_type == event_type]
        return list(reversed(history))[:limit]

    def clear(self) -> None:
        """清空订阅与历史（用于测试）"""
        with self._lock:
            self._subscribers.clear()
        self._history.clear()


# 全局事件总线实例
event_bus = EventBus()
