from __future__ import annotations

import time
from dataclasses import replace
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from lms.models.purchase import (
    PURCHASE_COMPLETED,
    PURCHASE_FAILED,
    PURCHASE_PENDING,
    CoursePurchase,
)


class PurchaseRepo(Protocol):
    async def add(self, purchase: CoursePurchase) -> None: ...
    async def get(self, purchase_id: UUID) -> CoursePurchase | None: ...
    async def get_by_payment_id(self, payment_id: str) -> CoursePurchase | None: ...
    async def set_payment_id(self, purchase_id: UUID, payment_id: str) -> None: ...
    async def delete(self, purchase_id: UUID) -> None: ...
    async def complete_if_pending(
        self, payment_id: str, amount: Decimal | None
    ) -> CoursePurchase | None: ...
    async def fail_if_pending(self, payment_id: str) -> bool: ...
    async def has_completed(self, user_id: str, course_id: UUID) -> bool: ...
    async def list_completed(self, user_id: str) -> list[CoursePurchase]: ...


class InMemoryPurchaseRepo:
    """Dict-backed purchases.

    The conditional transitions never await between the status check and
    the write, so concurrent webhook handlers on one event loop cannot
    both observe ``pending``.
    """

    def __init__(self) -> None:
        self._by_id: dict[UUID, CoursePurchase] = {}

    async def add(self, purchase: CoursePurchase) -> None:
        if purchase.id in self._by_id:
            raise ValueError("purchase already exists")
        self._by_id[purchase.id] = purchase

    async def get(self, purchase_id: UUID) -> CoursePurchase | None:
        return self._by_id.get(purchase_id)

    async def get_by_payment_id(self, payment_id: str) -> CoursePurchase | None:
        for purchase in self._by_id.values():
            if purchase.payment_id == payment_id:
                return purchase
        return None

    async def set_payment_id(self, purchase_id: UUID, payment_id: str) -> None:
        purchase = self._by_id.get(purchase_id)
        if purchase is None:
            raise KeyError("purchase not found")
        if any(
            p.payment_id == payment_id and p.id != purchase_id
            for p in self._by_id.values()
        ):
            raise ValueError("payment id already in use")
        self._by_id[purchase_id] = replace(
            purchase, payment_id=payment_id, updated_at=int(time.time())
        )

    async def delete(self, purchase_id: UUID) -> None:
        self._by_id.pop(purchase_id, None)

    async def complete_if_pending(
        self, payment_id: str, amount: Decimal | None
    ) -> CoursePurchase | None:
        purchase = await self.get_by_payment_id(payment_id)
        if purchase is None or purchase.status != PURCHASE_PENDING:
            return None
        updated = replace(
            purchase,
            status=PURCHASE_COMPLETED,
            amount=amount if amount is not None else purchase.amount,
            updated_at=int(time.time()),
        )
        self._by_id[purchase.id] = updated
        return updated

    async def fail_if_pending(self, payment_id: str) -> bool:
        purchase = await self.get_by_payment_id(payment_id)
        if purchase is None or purchase.status != PURCHASE_PENDING:
            return False
        self._by_id[purchase.id] = replace(
            purchase, status=PURCHASE_FAILED, updated_at=int(time.time())
        )
        return True

    async def has_completed(self, user_id: str, course_id: UUID) -> bool:
        return any(
            p.user_id == user_id and p.course_id == course_id and p.is_completed
            for p in self._by_id.values()
        )

    async def list_completed(self, user_id: str) -> list[CoursePurchase]:
        return [
            p for p in self._by_id.values() if p.user_id == user_id and p.is_completed
        ]
