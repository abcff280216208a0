"""PostgreSQL implementation of PurchaseRepo."""

from __future__ import annotations

import time
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.tables import CoursePurchaseRow
from lms.models.purchase import (
    PURCHASE_COMPLETED,
    PURCHASE_FAILED,
    PURCHASE_PENDING,
    CoursePurchase,
)


class PgPurchaseRepo:
    """Satisfies the PurchaseRepo Protocol using PostgreSQL.

    Status transitions are single conditional UPDATE statements, so two
    concurrent deliveries of the same webhook resolve inside the database:
    one UPDATE matches the pending row, the other matches nothing.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, purchase: CoursePurchase) -> None:
        row = CoursePurchaseRow(
            id=purchase.id,
            course_id=purchase.course_id,
            user_id=purchase.user_id,
            amount=purchase.amount,
            currency=purchase.currency,
            status=purchase.status,
            payment_method=purchase.payment_method,
            payment_id=purchase.payment_id,
            created_at=purchase.created_at,
            updated_at=purchase.updated_at,
        )
        self._session.add(row)
        await self._session.flush()

    async def get(self, purchase_id: UUID) -> CoursePurchase | None:
        stmt = (
            select(CoursePurchaseRow)
            .where(CoursePurchaseRow.id == purchase_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_purchase(row) if row is not None else None

    async def get_by_payment_id(self, payment_id: str) -> CoursePurchase | None:
        stmt = (
            select(CoursePurchaseRow)
            .where(CoursePurchaseRow.payment_id == payment_id)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_purchase(row) if row is not None else None

    async def set_payment_id(self, purchase_id: UUID, payment_id: str) -> None:
        stmt = (
            update(CoursePurchaseRow)
            .where(CoursePurchaseRow.id == purchase_id)
            .values(payment_id=payment_id, updated_at=int(time.time()))
        )
        await self._session.execute(stmt)

    async def delete(self, purchase_id: UUID) -> None:
        stmt = delete(CoursePurchaseRow).where(CoursePurchaseRow.id == purchase_id)
        await self._session.execute(stmt)

    async def complete_if_pending(
        self, payment_id: str, amount: Decimal | None
    ) -> CoursePurchase | None:
        values: dict[str, object] = {
            "status": PURCHASE_COMPLETED,
            "updated_at": int(time.time()),
        }
        if amount is not None:
            values["amount"] = amount
        stmt = (
            update(CoursePurchaseRow)
            .where(
                CoursePurchaseRow.payment_id == payment_id,
                CoursePurchaseRow.status == PURCHASE_PENDING,
            )
            .values(**values)
            .returning(CoursePurchaseRow)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_purchase(row) if row is not None else None

    async def fail_if_pending(self, payment_id: str) -> bool:
        stmt = (
            update(CoursePurchaseRow)
            .where(
                CoursePurchaseRow.payment_id == payment_id,
                CoursePurchaseRow.status == PURCHASE_PENDING,
            )
            .values(status=PURCHASE_FAILED, updated_at=int(time.time()))
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def has_completed(self, user_id: str, course_id: UUID) -> bool:
        stmt = select(
            exists().where(
                CoursePurchaseRow.user_id == user_id,
                CoursePurchaseRow.course_id == course_id,
                CoursePurchaseRow.status == PURCHASE_COMPLETED,
            )
        )
        return bool((await self._session.execute(stmt)).scalar())

    async def list_completed(self, user_id: str) -> list[CoursePurchase]:
        stmt = (
            select(CoursePurchaseRow)
            .where(
                CoursePurchaseRow.user_id == user_id,
                CoursePurchaseRow.status == PURCHASE_COMPLETED,
            )
            .order_by(CoursePurchaseRow.updated_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_purchase(row) for row in rows]


def _row_to_purchase(row: CoursePurchaseRow) -> CoursePurchase:
    return CoursePurchase(
        id=row.id,
        course_id=row.course_id,
        user_id=row.user_id,
        amount=row.amount,
        currency=row.currency,
        status=row.status,
        payment_method=row.payment_method,
        payment_id=row.payment_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
