"""Order status state machine.

Marketplace event codes form a closed vocabulary. Each code maps to a target
OrderStatus; whether an existing order actually moves is decided by
resolve_transition(), which encodes two explicit rules:

- canceled is absorbing: no event moves an order out of it.
- Every other transition is forward-only; a late or duplicated event never
  moves an order back.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Internal order lifecycle."""

    PENDING = "pending"
    PREPARING = "preparing"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @property
    def is_absorbing(self) -> bool:
        return self is OrderStatus.CANCELED


_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.PREPARING: 1,
    OrderStatus.DISPATCHED: 2,
    OrderStatus.COMPLETED: 3,
    OrderStatus.CANCELED: 4,
}


class EventCode(str, Enum):
    """Marketplace event codes (iFood short codes)."""

    PLACED = "PLC"
    CONFIRMED = "CFM"
    READY_FOR_DISPATCH = "RDR"
    DISPATCHED = "DSP"
    CONCLUDED = "CON"
    CANCELED = "CAN"

    @classmethod
    def parse(cls, raw: object) -> "EventCode | None":
        """Parse a raw upstream code, case-insensitively.

        Accepts short codes ("PLC") and long names ("placed",
        "ready_for_dispatch"). Returns None for codes outside the vocabulary.
        """
        if not isinstance(raw, str):
            return None
        key = raw.strip().upper().replace("-", "_")
        if not key:
            return None
        try:
            return cls(key)
        except ValueError:
            return _ALIASES.get(key)

    @property
    def target_status(self) -> OrderStatus:
        return _TARGET[self]


_ALIASES = {
    "PLACED": EventCode.PLACED,
    "CONFIRMED": EventCode.CONFIRMED,
    "READY_FOR_DISPATCH": EventCode.READY_FOR_DISPATCH,
    "READY_TO_PICKUP": EventCode.READY_FOR_DISPATCH,
    "RTP": EventCode.READY_FOR_DISPATCH,
    "DISPATCHED": EventCode.DISPATCHED,
    "CONCLUDED": EventCode.CONCLUDED,
    "CANCELED": EventCode.CANCELED,
    "CANCELLED": EventCode.CANCELED,
}

_TARGET = {
    EventCode.PLACED: OrderStatus.PENDING,
    EventCode.CONFIRMED: OrderStatus.PREPARING,
    EventCode.READY_FOR_DISPATCH: OrderStatus.PREPARING,
    EventCode.DISPATCHED: OrderStatus.DISPATCHED,
    EventCode.CONCLUDED: OrderStatus.COMPLETED,
    EventCode.CANCELED: OrderStatus.CANCELED,
}


def initial_status(code: EventCode) -> OrderStatus:
    """Status for an order first seen through an event with this code.

    A cancel creates the order already canceled; any other code creates it
    pending, and later events in the batch move it forward.
    """
    if code is EventCode.CANCELED:
        return OrderStatus.CANCELED
    return OrderStatus.PENDING


def resolve_transition(current: OrderStatus, code: EventCode) -> OrderStatus:
    """Return the status an existing order should have after this event.

    Returns ``current`` when the event must not change the order.
    """
    if current.is_absorbing:
        return current

    target = code.target_status
    if target is OrderStatus.CANCELED:
        return target

    if target.rank > current.rank:
        return target

    return current
