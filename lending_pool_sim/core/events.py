#!/usr/bin/env python3
"""
Pool events

Every state transition of the pool is reported as one of the event records
below, appended to the pool's EventLog. Events emitted by a call that is later
rolled back are discarded together with the rest of its effects.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterator, List, Type, TypeVar


@dataclass(frozen=True)
class PoolEvent:
    """Base record for pool events"""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event"] = self.name
        return data


@dataclass(frozen=True)
class Deposit(PoolEvent):
    reserve: str
    user: str
    on_behalf_of: str
    amount: int


@dataclass(frozen=True)
class Withdraw(PoolEvent):
    reserve: str
    user: str
    to: str
    amount: int


@dataclass(frozen=True)
class Borrow(PoolEvent):
    reserve: str
    user: str
    on_behalf_of: str
    amount: int
    borrow_rate: int


@dataclass(frozen=True)
class Repay(PoolEvent):
    reserve: str
    user: str
    repayer: str
    amount: int


@dataclass(frozen=True)
class ReserveUsedAsCollateralEnabled(PoolEvent):
    reserve: str
    user: str


@dataclass(frozen=True)
class ReserveUsedAsCollateralDisabled(PoolEvent):
    reserve: str
    user: str


@dataclass(frozen=True)
class ReserveDataUpdated(PoolEvent):
    reserve: str
    liquidity_rate: int
    variable_borrow_rate: int
    liquidity_index: int
    variable_borrow_index: int


@dataclass(frozen=True)
class LiquidationCall(PoolEvent):
    collateral_asset: str
    debt_asset: str
    user: str
    debt_to_cover: int
    liquidated_collateral_amount: int
    liquidator: str


@dataclass(frozen=True)
class ReserveInitialized(PoolEvent):
    reserve: str
    reserve_id: int
    a_token: str
    variable_debt_token: str
    interest_rate_strategy: str


@dataclass(frozen=True)
class Paused(PoolEvent):
    pass


@dataclass(frozen=True)
class Unpaused(PoolEvent):
    pass


E = TypeVar("E", bound=PoolEvent)


class EventLog:
    """Append-only event list with truncation for rollback"""

    def __init__(self):
        self._events: List[PoolEvent] = []

    def emit(self, event: PoolEvent) -> None:
        self._events.append(event)

    def of_type(self, event_type: Type[E]) -> List[E]:
        return [event for event in self._events if isinstance(event, event_type)]

    def last(self) -> PoolEvent:
        return self._events[-1]

    def truncate(self, length: int) -> None:
        del self._events[length:]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[PoolEvent]:
        return iter(self._events)
