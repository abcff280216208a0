"""Course purchase endpoints and the payment gateway webhook.

The webhook is authenticated by its signature header, not a bearer
token, and is exempt from rate limiting: the gateway retries on any
non-2xx and must not be throttled into giving up.
"""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request

from lms.api.dependencies import API_PREFIX, CurrentUser, get_purchase_service
from lms.api.ratelimit import require_rate_limit
from lms.api.schemas import ApiModel, CourseDetailOut, Envelope
from lms.services.purchase_service import PurchaseService

router = APIRouter(prefix=f"{API_PREFIX}/purchase", tags=["purchase"])

Service = Annotated[PurchaseService, Depends(get_purchase_service)]
_rate_limited = [Depends(require_rate_limit())]


class CheckoutIn(ApiModel):
    course_id: UUID


class CheckoutOut(ApiModel):
    checkout_url: str


class PurchaseStatusOut(ApiModel):
    course: CourseDetailOut
    is_purchased: bool


class WebhookAck(ApiModel):
    received: bool


@router.post(
    "/checkout/create-checkout-session",
    response_model=Envelope[CheckoutOut],
    dependencies=_rate_limited,
)
async def create_checkout_session(
    body: CheckoutIn, principal: CurrentUser, service: Service
) -> Envelope[CheckoutOut]:
    result = await service.initiate_checkout(principal.user_id, body.course_id)
    return Envelope(data=CheckoutOut(checkout_url=result.checkout_url))


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    service: Service,
    stripe_signature: Annotated[str | None, Header()] = None,
) -> WebhookAck:
    # Signature covers the exact bytes, so read the raw body
    payload = await request.body()
    ack = await service.handle_payment_webhook(payload, stripe_signature)
    return WebhookAck(received=ack["received"])


@router.get(
    "/course/{course_id}/detail-with-status",
    response_model=Envelope[PurchaseStatusOut],
    dependencies=_rate_limited,
)
async def get_course_detail_with_status(
    course_id: UUID, principal: CurrentUser, service: Service
) -> Envelope[PurchaseStatusOut]:
    course, is_purchased = await service.get_purchase_status(
        principal.user_id, course_id
    )
    return Envelope(
        data=PurchaseStatusOut(
            course=CourseDetailOut.of(course), is_purchased=is_purchased
        )
    )


@router.get("/", response_model=Envelope[list[UUID]], dependencies=_rate_limited)
async def list_purchased_courses(
    principal: CurrentUser, service: Service
) -> Envelope[list[UUID]]:
    return Envelope(data=await service.list_purchased_courses(principal.user_id))
