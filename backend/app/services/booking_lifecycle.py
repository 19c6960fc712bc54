"""
预订生命周期 - 状态转换表

预订状态与支付状态各自一张转换表，两者互不耦合。
新增状态只需修改这里的表，服务层通过状态机统一校验。
"""
from core.engine.state_machine import StateMachine, StateMachineConfig, StateTransition
from app.models.ontology import BookingStatus, PaymentStatus

S = BookingStatus
P = PaymentStatus


BOOKING_TRANSITIONS = [
    # 管理员确认 / 拒绝
    StateTransition(S.PENDING.value, S.CONFIRMED.value, "confirm"),
    StateTransition(S.PENDING.value, S.REJECTED.value, "reject"),
    StateTransition(S.CONFIRMED.value, S.REJECTED.value, "reject"),
    # 预订人取消（任意非终态）
    StateTransition(S.PENDING.value, S.CANCELLED.value, "cancel"),
    StateTransition(S.CONFIRMED.value, S.CANCELLED.value, "cancel"),
    StateTransition(S.CHECKED_IN.value, S.CANCELLED.value, "cancel"),
    # 到场流程
    StateTransition(S.CONFIRMED.value, S.COMPLETED.value, "complete"),
    StateTransition(S.CONFIRMED.value, S.CHECKED_IN.value, "check_in"),
    StateTransition(S.CONFIRMED.value, S.MISSED.value, "miss"),
    StateTransition(S.CHECKED_IN.value, S.COMPLETED.value, "check_out"),
    StateTransition(S.CHECKED_IN.value, S.NO_CHECKOUT.value, "no_checkout"),
]

PAYMENT_TRANSITIONS = [
    StateTransition(P.PENDING.value, P.PAID.value, "pay"),
    StateTransition(P.PENDING.value, P.FAILED.value, "fail"),
    StateTransition(P.FAILED.value, P.PENDING.value, "retry"),
    StateTransition(P.FAILED.value, P.PAID.value, "pay"),
    StateTransition(P.PAID.value, P.REFUNDED.value, "refund"),
]


booking_state_machine = StateMachine(StateMachineConfig(
    name="Booking",
    states=[s.value for s in BookingStatus],
    transitions=BOOKING_TRANSITIONS,
    initial_state=S.PENDING.value,
))

payment_state_machine = StateMachine(StateMachineConfig(
    name="BookingPayment",
    states=[p.value for p in PaymentStatus],
    transitions=PAYMENT_TRANSITIONS,
    initial_state=P.PENDING.value,
))


def is_terminal_status(status: BookingStatus) -> bool:
    """终态预订不再占用座位"""
    return booking_state_machine.is_terminal(BookingStatus(status).value)
