from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

PURCHASE_PENDING = "pending"
PURCHASE_COMPLETED = "completed"
PURCHASE_FAILED = "failed"
PURCHASE_STATUSES = (PURCHASE_PENDING, PURCHASE_COMPLETED, PURCHASE_FAILED)


@dataclass(frozen=True, slots=True)
class CoursePurchase:
    """A checkout attempt for one course by one user.

    Status moves pending -> completed or pending -> failed, once, driven by
    verified gateway webhooks.  ``payment_id`` is the gateway's checkout
    session id; it is set right after the session is created.
    """

    id: UUID
    course_id: UUID
    user_id: str
    amount: Decimal
    currency: str = "inr"
    status: str = PURCHASE_PENDING  # pending|completed|failed
    payment_method: str = "stripe"
    payment_id: str | None = None
    created_at: int = 0
    updated_at: int = 0

    @staticmethod
    def new(
        *,
        course_id: UUID,
        user_id: str,
        amount: Decimal,
        currency: str = "inr",
        payment_method: str = "stripe",
    ) -> CoursePurchase:
        now = int(time.time())
        return CoursePurchase(
            id=uuid4(),
            course_id=course_id,
            user_id=user_id,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_completed(self) -> bool:
        return self.status == PURCHASE_COMPLETED


@dataclass(frozen=True, slots=True)
class Enrollment:
    user_id: str
    course_id: UUID
    enrolled_at: int
