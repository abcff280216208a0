"""PurchaseService: checkout compensation and webhook reconciliation."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest

from lms.core.errors import (
    ConflictError,
    NotFoundError,
    PurchasePendingError,
    SignatureError,
    UpstreamError,
    ValidationError,
)
from lms.models.course import Course, Lecture
from lms.models.purchase import PURCHASE_COMPLETED, PURCHASE_FAILED, PURCHASE_PENDING
from lms.repos.course_repo import InMemoryCourseRepo
from lms.repos.enrollment_repo import InMemoryEnrollmentRepo
from lms.repos.purchase_repo import InMemoryPurchaseRepo
from lms.services.payment_gateway import InMemoryPaymentGateway, sign_payload
from lms.services.purchase_service import PurchaseService

SECRET = "whsec_unit"


class _World:
    def __init__(self) -> None:
        self.courses = InMemoryCourseRepo()
        self.purchases = InMemoryPurchaseRepo()
        self.enrollments = InMemoryEnrollmentRepo()
        self.gateway = InMemoryPaymentGateway(webhook_secret=SECRET)
        self.service = PurchaseService(
            self.courses,
            self.purchases,
            self.enrollments,
            self.gateway,
            client_url="http://localhost:5173/",
            currency="inr",
        )

    def course(self, *, price: str = "499", published: bool = True) -> Course:
        course = Course.new(title="Data Pipelines", instructor_id="inst", price=Decimal(price))

        async def seed() -> None:
            await self.courses.add(course)
            await self.courses.add_lecture(
                Lecture.new(course_id=course.id, title="Intro", position=1)
            )
            if published:
                await self.courses.update(replace(course, is_published=True))

        asyncio.run(seed())
        return course

    def deliver(self, payload: bytes) -> dict[str, bool]:
        return asyncio.run(
            self.service.handle_payment_webhook(payload, sign_payload(payload, SECRET))
        )


@pytest.fixture
def world() -> _World:
    return _World()


# ---- checkout ----


def test_checkout_creates_pending_purchase_with_session(world: _World) -> None:
    course = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", course.id))

    purchase = asyncio.run(world.purchases.get(result.purchase_id))
    assert purchase is not None
    assert purchase.status == PURCHASE_PENDING
    assert purchase.amount == Decimal("499")
    assert purchase.payment_id == result.payment_id
    assert result.checkout_url.endswith(result.payment_id)

    request = world.gateway.sessions[result.payment_id]
    assert request.metadata == {
        "courseId": str(course.id),
        "userId": "u1",
        "purchaseId": str(purchase.id),
    }
    assert request.success_url == f"http://localhost:5173/course-progress/{course.id}"
    assert request.cancel_url == f"http://localhost:5173/course-detail/{course.id}"


def test_checkout_unknown_course_creates_nothing(world: _World) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(world.service.initiate_checkout("u1", uuid4()))
    assert world.purchases._by_id == {}


def test_checkout_rejects_unpublished_course(world: _World) -> None:
    course = world.course(published=False)
    with pytest.raises(ValidationError):
        asyncio.run(world.service.initiate_checkout("u1", course.id))


def test_checkout_rejects_free_course(world: _World) -> None:
    course = world.course(price="0")
    with pytest.raises(ValidationError):
        asyncio.run(world.service.initiate_checkout("u1", course.id))


def test_gateway_failure_leaves_no_pending_row(world: _World) -> None:
    course = world.course()
    world.gateway.fail_next = True
    with pytest.raises(UpstreamError):
        asyncio.run(world.service.initiate_checkout("u1", course.id))
    assert world.purchases._by_id == {}


def test_missing_checkout_url_is_upstream_error(world: _World) -> None:
    course = world.course()
    world.gateway.omit_url = True
    with pytest.raises(UpstreamError):
        asyncio.run(world.service.initiate_checkout("u1", course.id))
    assert world.purchases._by_id == {}


def test_checkout_after_completed_purchase_conflicts(world: _World) -> None:
    course = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", course.id))
    world.deliver(world.gateway.build_event(result.payment_id))
    with pytest.raises(ConflictError):
        asyncio.run(world.service.initiate_checkout("u1", course.id))


# ---- webhook ----


def test_completion_webhook_completes_and_enrolls(world: _World) -> None:
    course = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", course.id))

    ack = world.deliver(world.gateway.build_event(result.payment_id))

    assert ack == {"received": True}
    purchase = asyncio.run(world.purchases.get(result.purchase_id))
    assert purchase is not None and purchase.status == PURCHASE_COMPLETED
    assert asyncio.run(world.enrollments.is_enrolled("u1", course.id)) is True


def test_completion_records_captured_amount(world: _World) -> None:
    course = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", course.id))
    world.deliver(world.gateway.build_event(result.payment_id, amount_total=39950))
    purchase = asyncio.run(world.purchases.get(result.purchase_id))
    assert purchase is not None
    assert purchase.amount == Decimal("399.50")


def test_duplicate_delivery_grants_once(world: _World) -> None:
    course = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", course.id))
    payload = world.gateway.build_event(result.payment_id)

    assert world.deliver(payload) == {"received": True}
    assert world.deliver(payload) == {"received": True}

    completed = asyncio.run(world.purchases.list_completed("u1"))
    assert len(completed) == 1
    assert asyncio.run(world.enrollments.list_student_ids(course.id)) == ["u1"]


def test_concurrent_duplicate_deliveries_grant_once(world: _World) -> None:
    course = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", course.id))
    payload = world.gateway.build_event(result.payment_id)
    header = sign_payload(payload, SECRET)

    async def both() -> None:
        await asyncio.gather(
            world.service.handle_payment_webhook(payload, header),
            world.service.handle_payment_webhook(payload, header),
        )

    asyncio.run(both())
    assert len(asyncio.run(world.purchases.list_completed("u1"))) == 1
    assert asyncio.run(world.enrollments.list_course_ids("u1")) == [course.id]


def test_bad_signature_changes_nothing(world: _World) -> None:
    course = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", course.id))
    payload = world.gateway.build_event(result.payment_id)

    with pytest.raises(SignatureError):
        asyncio.run(
            world.service.handle_payment_webhook(
                payload, sign_payload(payload, "whsec_wrong")
            )
        )
    with pytest.raises(SignatureError):
        asyncio.run(world.service.handle_payment_webhook(payload, None))

    purchase = asyncio.run(world.purchases.get(result.purchase_id))
    assert purchase is not None and purchase.status == PURCHASE_PENDING
    assert asyncio.run(world.enrollments.is_enrolled("u1", course.id)) is False


def test_expired_session_marks_purchase_failed(world: _World) -> None:
    course = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", course.id))
    world.deliver(
        world.gateway.build_event(
            result.payment_id, event_type="checkout.session.expired"
        )
    )
    purchase = asyncio.run(world.purchases.get(result.purchase_id))
    assert purchase is not None and purchase.status == PURCHASE_FAILED
    assert asyncio.run(world.enrollments.is_enrolled("u1", course.id)) is False


def test_failure_event_does_not_undo_completion(world: _World) -> None:
    course = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", course.id))
    world.deliver(world.gateway.build_event(result.payment_id))
    world.deliver(
        world.gateway.build_event(
            result.payment_id, event_type="checkout.session.async_payment_failed"
        )
    )
    purchase = asyncio.run(world.purchases.get(result.purchase_id))
    assert purchase is not None and purchase.status == PURCHASE_COMPLETED


def test_unrelated_event_type_is_acknowledged(world: _World) -> None:
    payload = json.dumps(
        {"id": "evt_1", "type": "customer.created", "data": {"object": {"id": "cus_1"}}}
    ).encode()
    assert world.deliver(payload) == {"received": True}


def _orphan_completion(course_id: str, user_id: str = "u1") -> bytes:
    return json.dumps(
        {
            "id": "evt_orphan",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_test_not_recorded",
                    "metadata": {"courseId": course_id, "userId": user_id},
                }
            },
        }
    ).encode()


def test_early_webhook_for_known_course_asks_for_retry(world: _World) -> None:
    course = world.course()
    with pytest.raises(PurchasePendingError):
        world.deliver(_orphan_completion(str(course.id)))


def test_webhook_for_unknown_course_is_acknowledged(world: _World) -> None:
    assert world.deliver(_orphan_completion(str(uuid4()))) == {"received": True}
    assert world.purchases._by_id == {}


def test_webhook_without_metadata_is_acknowledged(world: _World) -> None:
    assert world.deliver(_orphan_completion("not-a-uuid")) == {"received": True}


# ---- reads ----


def test_purchase_status_false_while_pending_true_after(world: _World) -> None:
    course = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", course.id))

    _, purchased = asyncio.run(world.service.get_purchase_status("u1", course.id))
    assert purchased is False

    world.deliver(world.gateway.build_event(result.payment_id))
    _, purchased = asyncio.run(world.service.get_purchase_status("u1", course.id))
    assert purchased is True


def test_purchase_status_unknown_course(world: _World) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(world.service.get_purchase_status("u1", uuid4()))


def test_list_purchased_courses_only_completed(world: _World) -> None:
    bought = world.course()
    abandoned = world.course()
    result = asyncio.run(world.service.initiate_checkout("u1", bought.id))
    asyncio.run(world.service.initiate_checkout("u1", abandoned.id))
    world.deliver(world.gateway.build_event(result.payment_id))

    assert asyncio.run(world.service.list_purchased_courses("u1")) == [bought.id]
