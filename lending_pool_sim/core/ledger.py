#!/usr/bin/env python3
"""
Position ledger: per-user reserve flags and the reserve registry.
"""

from typing import Dict, List, Optional

from .errors import Errors, ReserveFullError, ValidationError

MAX_NUMBER_RESERVES = 128


class UserConfiguration:
    """
    Two flags per reserve id for a single user: "using as collateral" and
    "is borrowing". Stored as fixed-size boolean tables indexed by reserve id.
    """

    def __init__(self, capacity: int = MAX_NUMBER_RESERVES):
        self.capacity = capacity
        self._collateral = [False] * capacity
        self._borrowing = [False] * capacity

    def _check(self, reserve_id: int) -> None:
        if not 0 <= reserve_id < self.capacity:
            raise ValidationError(Errors.UL_INVALID_INDEX, f"Reserve id {reserve_id} out of range")

    def set_borrowing(self, reserve_id: int, borrowing: bool) -> None:
        self._check(reserve_id)
        self._borrowing[reserve_id] = borrowing

    def set_using_as_collateral(self, reserve_id: int, using_as_collateral: bool) -> None:
        self._check(reserve_id)
        self._collateral[reserve_id] = using_as_collateral

    def is_using_as_collateral(self, reserve_id: int) -> bool:
        self._check(reserve_id)
        return self._collateral[reserve_id]

    def is_borrowing(self, reserve_id: int) -> bool:
        self._check(reserve_id)
        return self._borrowing[reserve_id]

    def is_using_as_collateral_or_borrowing(self, reserve_id: int) -> bool:
        return self.is_using_as_collateral(reserve_id) or self.is_borrowing(reserve_id)

    def is_borrowing_any(self) -> bool:
        return any(self._borrowing)

    def is_empty(self) -> bool:
        return not any(self._borrowing) and not any(self._collateral)

    def collateral_reserve_ids(self) -> List[int]:
        return [i for i, flag in enumerate(self._collateral) if flag]

    def borrowing_reserve_ids(self) -> List[int]:
        return [i for i, flag in enumerate(self._borrowing) if flag]

    def copy(self) -> "UserConfiguration":
        clone = UserConfiguration(self.capacity)
        clone._collateral = list(self._collateral)
        clone._borrowing = list(self._borrowing)
        return clone

    def restore_from(self, other: "UserConfiguration") -> None:
        self._collateral = list(other._collateral)
        self._borrowing = list(other._borrowing)

    def __eq__(self, other) -> bool:
        if not isinstance(other, UserConfiguration):
            return NotImplemented
        return self._collateral == other._collateral and self._borrowing == other._borrowing

    def __repr__(self) -> str:
        return (f"UserConfiguration(collateral={self.collateral_reserve_ids()}, "
                f"borrowing={self.borrowing_reserve_ids()})")


class ReserveRegistry:
    """
    Dense id assignment for listed assets.

    Id 0 is a real slot. Lookups report an unregistered asset as None, never
    as 0.
    """

    def __init__(self, max_reserves: int = MAX_NUMBER_RESERVES):
        self.max_reserves = max_reserves
        self._reserves_list: List[str] = []
        self._ids: Dict[str, int] = {}

    def register(self, asset: str) -> int:
        """Assign the next id to asset; registering twice returns the same id"""
        existing = self._ids.get(asset)
        if existing is not None:
            return existing

        if len(self._reserves_list) >= self.max_reserves:
            raise ReserveFullError(f"Registry holds the maximum of {self.max_reserves} reserves")

        reserve_id = len(self._reserves_list)
        self._ids[asset] = reserve_id
        self._reserves_list.append(asset)
        return reserve_id

    def get_id(self, asset: str) -> Optional[int]:
        return self._ids.get(asset)

    def asset_at(self, reserve_id: int) -> str:
        return self._reserves_list[reserve_id]

    def __contains__(self, asset: str) -> bool:
        return asset in self._ids

    @property
    def reserves_list(self) -> List[str]:
        return list(self._reserves_list)

    @property
    def reserves_count(self) -> int:
        return len(self._reserves_list)

    def copy(self) -> "ReserveRegistry":
        clone = ReserveRegistry(self.max_reserves)
        clone._reserves_list = list(self._reserves_list)
        clone._ids = dict(self._ids)
        return clone
