"""Course purchases: checkout, webhook reconciliation, status reads.

CHECKOUT vs WEBHOOK ORDERING
-----------------------------
Checkout and the gateway's completion webhook travel on independent
request paths, joined only by the gateway session id (``payment_id``):

  POST /checkout  -> insert pending row -> gateway session -> set payment_id
  POST /webhook   -> verify -> pending->completed (conditional) -> enroll

The webhook can arrive:

  * twice (at-least-once delivery): the conditional transition lets only
    one delivery win; losers see ``completed`` and skip the grant.
  * before payment_id is visible: the event metadata still names the
    user and course, so we answer 503 and let the gateway redeliver.
  * for a purchase we will never know about: acknowledged (2xx) and
    logged, so the gateway stops retrying.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from uuid import UUID

from lms.core.errors import (
    ConflictError,
    NotFoundError,
    PurchasePendingError,
    SignatureError,
    UpstreamError,
    ValidationError,
)
from lms.core.metrics import (
    CHECKOUT_SESSIONS,
    ENROLLMENTS_GRANTED,
    WEBHOOK_DURATION,
    WEBHOOK_EVENTS,
)
from lms.models.course import Course
from lms.models.purchase import CoursePurchase
from lms.repos.course_repo import CourseRepo
from lms.repos.enrollment_repo import EnrollmentRepo
from lms.repos.purchase_repo import PurchaseRepo
from lms.services.payment_gateway import (
    CheckoutRequest,
    PaymentGateway,
    PaymentGatewayError,
    WebhookEvent,
    WebhookVerificationError,
)

logger = logging.getLogger(__name__)

COMPLETION_EVENTS = frozenset(
    {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
)
FAILURE_EVENTS = frozenset(
    {"checkout.session.expired", "checkout.session.async_payment_failed"}
)


@dataclass(frozen=True, slots=True)
class CheckoutResult:
    checkout_url: str
    purchase_id: UUID
    payment_id: str


class PurchaseService:
    def __init__(
        self,
        courses: CourseRepo,
        purchases: PurchaseRepo,
        enrollments: EnrollmentRepo,
        gateway: PaymentGateway,
        *,
        client_url: str,
        currency: str = "inr",
    ) -> None:
        self._courses = courses
        self._purchases = purchases
        self._enrollments = enrollments
        self._gateway = gateway
        self._client_url = client_url.rstrip("/")
        self._currency = currency

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def initiate_checkout(self, user_id: str, course_id: UUID) -> CheckoutResult:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFoundError("Course not found")
        if not course.is_published:
            raise ValidationError("Course is not available for purchase")
        if course.price <= 0:
            raise ValidationError("Course has no price to pay")
        if await self._purchases.has_completed(user_id, course_id):
            raise ConflictError("Course already purchased")

        purchase = CoursePurchase.new(
            course_id=course_id,
            user_id=user_id,
            amount=course.price,
            currency=self._currency,
        )
        await self._purchases.add(purchase)

        request = CheckoutRequest(
            amount=course.price,
            currency=self._currency,
            product_name=course.title,
            success_url=f"{self._client_url}/course-progress/{course_id}",
            cancel_url=f"{self._client_url}/course-detail/{course_id}",
            metadata={
                "courseId": str(course_id),
                "userId": user_id,
                "purchaseId": str(purchase.id),
            },
        )
        try:
            session = await self._gateway.create_checkout_session(request)
        except PaymentGatewayError as e:
            await self._abandon(purchase, reason=str(e))
            raise UpstreamError("Failed to create checkout session") from e

        if not session.url:
            await self._abandon(purchase, reason="no checkout url")
            raise UpstreamError("Failed to create checkout session")

        await self._purchases.set_payment_id(purchase.id, session.id)
        CHECKOUT_SESSIONS.labels(outcome="created").inc()
        logger.info(
            "Checkout session created purchase=%s payment_id=%s",
            purchase.id,
            session.id,
            extra={
                "user_id": user_id,
                "course_id": str(course_id),
                "payment_id": session.id,
            },
        )
        return CheckoutResult(
            checkout_url=session.url, purchase_id=purchase.id, payment_id=session.id
        )

    async def _abandon(self, purchase: CoursePurchase, *, reason: str) -> None:
        # No session exists, so no webhook will ever settle this row
        await self._purchases.delete(purchase.id)
        CHECKOUT_SESSIONS.labels(outcome="gateway_error").inc()
        logger.warning(
            "Checkout abandoned purchase=%s reason=%s",
            purchase.id,
            reason,
            extra={"user_id": purchase.user_id, "course_id": str(purchase.course_id)},
        )

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    async def handle_payment_webhook(
        self, payload: bytes, sig_header: str | None
    ) -> dict[str, bool]:
        try:
            event = self._gateway.construct_event(payload, sig_header)
        except WebhookVerificationError as e:
            WEBHOOK_EVENTS.labels(event_type="unknown", outcome="bad_signature").inc()
            raise SignatureError(f"Webhook Error: {e}") from None

        with WEBHOOK_DURATION.time():
            if event.type in COMPLETION_EVENTS:
                try:
                    outcome = await self._complete(event)
                except NotFoundError:
                    outcome = "unknown_purchase"
                    logger.warning(
                        "Purchase record not found for payment_id=%s, acknowledging",
                        event.session_id,
                        extra={"payment_id": event.session_id, "event_type": event.type},
                    )
            elif event.type in FAILURE_EVENTS:
                outcome = await self._fail(event)
            else:
                outcome = "ignored"
                logger.debug("Ignoring webhook event type=%s", event.type)

        WEBHOOK_EVENTS.labels(event_type=event.type, outcome=outcome).inc()
        return {"received": True}

    async def _complete(self, event: WebhookEvent) -> str:
        payment_id = event.session_id
        if payment_id is None:
            raise NotFoundError("Purchase record not found")

        purchase = await self._purchases.complete_if_pending(
            payment_id, event.amount_total
        )
        if purchase is not None:
            granted = await self._enrollments.grant(
                purchase.user_id, purchase.course_id, int(time.time())
            )
            if granted:
                ENROLLMENTS_GRANTED.inc()
            logger.info(
                "Purchase completed purchase=%s amount=%s enrolled=%s",
                purchase.id,
                purchase.amount,
                granted,
                extra={
                    "user_id": purchase.user_id,
                    "course_id": str(purchase.course_id),
                    "payment_id": payment_id,
                },
            )
            return "completed"

        existing = await self._purchases.get_by_payment_id(payment_id)
        if existing is not None:
            if existing.is_completed:
                logger.info(
                    "Duplicate completion for payment_id=%s, already granted",
                    payment_id,
                    extra={"payment_id": payment_id},
                )
                return "duplicate"
            logger.warning(
                "Completion for purchase=%s in status=%s ignored",
                existing.id,
                existing.status,
                extra={"payment_id": payment_id},
            )
            return "ignored"

        if await self._checkout_may_be_in_flight(event):
            WEBHOOK_EVENTS.labels(event_type=event.type, outcome="retry").inc()
            logger.warning(
                "Completion for payment_id=%s arrived before checkout recorded it",
                payment_id,
                extra={"payment_id": payment_id},
            )
            raise PurchasePendingError()

        raise NotFoundError("Purchase record not found")

    async def _checkout_may_be_in_flight(self, event: WebhookEvent) -> bool:
        metadata = event.metadata
        user_id = metadata.get("userId")
        try:
            course_id = UUID(metadata.get("courseId", ""))
        except ValueError:
            return False
        if not user_id:
            return False
        if await self._courses.get(course_id) is None:
            return False
        return not await self._purchases.has_completed(user_id, course_id)

    async def _fail(self, event: WebhookEvent) -> str:
        payment_id = event.session_id
        if payment_id is None or not await self._purchases.fail_if_pending(payment_id):
            return "ignored"
        logger.info(
            "Purchase failed payment_id=%s event=%s",
            payment_id,
            event.type,
            extra={"payment_id": payment_id, "event_type": event.type},
        )
        return "failed"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_purchase_status(
        self, user_id: str, course_id: UUID
    ) -> tuple[Course, bool]:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFoundError("Course not found")
        return course, await self._purchases.has_completed(user_id, course_id)

    async def list_purchased_courses(self, user_id: str) -> list[UUID]:
        seen: dict[UUID, None] = {}
        for purchase in await self._purchases.list_completed(user_id):
            seen.setdefault(purchase.course_id, None)
        return list(seen)
