"""
通知渠道接口：域无关的通知抽象

app 层通过实现 INotificationChannel 对接具体渠道（日志、站内信、Webhook 等）。
通知是 fire-and-forget：渠道失败只记录日志，不向业务调用方抛出。
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """
    一条通知

    Attributes:
        recipient: 接收方标识（用户ID等，由渠道实现决定含义）
        subject: 通知标题
        content: 通知内容
        extra: 扩展参数（事件类型、实体 ID 等）
    """

    recipient: str
    subject: str
    content: str
    extra: Dict[str, Any] = field(default_factory=dict)


class INotificationChannel(ABC):
    """通知渠道接口"""

    @abstractmethod
    def send(self, notification: Notification) -> bool:
        """发送通知，返回是否成功"""

    @abstractmethod
    def get_channel_type(self) -> str:
        """返回渠道类型标识，如 'log', 'internal', 'webhook'"""


class NotificationChannelRegistry:
    """通知渠道注册表

    app 层在 lifespan 中注册实现：
        notification_registry.register(LogChannel())
    """

    def __init__(self):
        self._channels: Dict[str, INotificationChannel] = {}

    def register(self, channel: INotificationChannel) -> None:
        """注册通知渠道（同类型覆盖）"""
        self._channels[channel.get_channel_type()] = channel

    def get_channel(self, channel_type: str) -> Optional[INotificationChannel]:
        return self._channels.get(channel_type)

    def get_all_channels(self) -> List[INotificationChannel]:
        return list(self._channels.values())

    def dispatch(self, notification: Notification) -> int:
        """向所有渠道发送通知

        Returns:
            发送成功的渠道数量
        """
        delivered = 0
        for channel in self.get_all_channels():
            try:
                if channel.send(notification):
                    delivered += 1
            except Exception as e:
                logger.error(
                    f"Notification channel {channel.get_channel_type()} failed for {notification.recipient}: {e}",
                    exc_info=True
                )
        return delivered

    def clear(self) -> None:
        """清除所有渠道（用于测试）"""
        self._channels.clear()


# 全局通知渠道注册表
notification_registry = NotificationChannelRegistry()
