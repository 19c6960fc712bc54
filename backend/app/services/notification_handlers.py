"""
通知处理器 - 把预订领域事件转成通知并投递到已注册渠道

投递是 fire-and-forget：渠道异常在注册表内被隔离，业务操作不依赖通知结果
"""
import logging
from typing import Optional

from app.models.events import EventType
from app.services.event_bus import EventBus, Event, event_bus
from core.notification.channel import (
    INotificationChannel, Notification, NotificationChannelRegistry, notification_registry
)

logger = logging.getLogger(__name__)


STATUS_SUBJECTS = {
    "confirmed": "预订已确认",
    "rejected": "预订被拒绝",
    "cancelled": "预订已取消",
    "checked-in": "已签到",
    "completed": "预订已完成",
    "missed": "预订已错过",
    "no-checkout": "未签退",
}


class LogChannel(INotificationChannel):
    """日志渠道 - 默认渠道，把通知写入应用日志"""

    def send(self, notification: Notification) -> bool:
        logger.info(
            f"[notify -> user {notification.recipient}] {notification.subject}: {notification.content}"
        )
        return True

    def get_channel_type(self) -> str:
        return "log"


def build_notification(event: Event) -> Optional[Notification]:
    """把事件转换为通知；与用户无关的事件返回 None"""
    data = event.data
    if "user_id" not in data:
        return None

    if event.event_type == EventType.BOOKING_CREATED.value:
        when = data.get("booking_date") or f"{data.get('start_date')} ~ {data.get('end_date')}"
        subject = "预订已提交"
        content = f"预订 #{data['booking_id']}（座位 {data['seat_id']}，{when}）等待确认"
    elif event.event_type == EventType.BOOKING_STATUS_CHANGED.value:
        subject = STATUS_SUBJECTS.get(data["new_status"], "预订状态变更")
        content = f"预订 #{data['booking_id']} 状态：{data['old_status']} -> {data['new_status']}"
        if data.get("reason"):
            content += f"（原因：{data['reason']}）"
    elif event.event_type == EventType.BOOKING_PAYMENT_CHANGED.value:
        subject = "支付状态变更"
        content = (
            f"预订 #{data['booking_id']} 支付状态："
            f"{data['old_payment_status']} -> {data['new_payment_status']}"
        )
    else:
        return None

    return Notification(
        recipient=str(data["user_id"]),
        subject=subject,
        content=content,
        extra={"event_type": event.event_type, "booking_id": data.get("booking_id")},
    )


def make_notification_handler(registry: NotificationChannelRegistry):
    def notify_booking_event(event: Event) -> None:
        notification = build_notification(event)
        if notification is not None:
            registry.dispatch(notification)
    return notify_booking_event


def register_notification_handlers(bus: EventBus = event_bus,
                                   registry: NotificationChannelRegistry = notification_registry):
    """注册通知处理器，返回处理器以便测试中取消订阅"""
    if registry.get_channel("log") is None:
        registry.register(LogChannel())

    handler = make_notification_handler(registry)
    for event_type in (
        EventType.BOOKING_CREATED,
        EventType.BOOKING_STATUS_CHANGED,
        EventType.BOOKING_PAYMENT_CHANGED,
    ):
        bus.subscribe(event_type.value, handler)
    logger.info("Booking notification handlers registered")
    return handler
