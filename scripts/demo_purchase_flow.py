"""Demo: author a course, buy it, deliver the webhook, track progress.

Runs against the in-memory backends with FastAPI TestClient:
    python scripts/demo_purchase_flow.py
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from lms.api import dependencies
from lms.main import app
from lms.services import token_service
from lms.services.payment_gateway import InMemoryPaymentGateway, sign_payload


def _auth(sub: str, roles: list[str]) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_service.create_access_token(sub=sub, roles=roles)}"}


def main() -> None:
    gateway = dependencies.payment_gateway
    if not isinstance(gateway, InMemoryPaymentGateway):
        raise SystemExit("demo needs the in-memory gateway (unset STRIPE_SECRET_KEY)")

    client = TestClient(app)
    author = _auth("demo-instructor", ["instructor"])
    student = _auth("demo-student", ["student"])

    # ── Step 1: instructor builds and publishes a course ────────────
    r = client.post(
        "/api/v1/course",
        json={"title": "Intro to Python", "price": 499, "category": "programming"},
        headers=author,
    )
    course_id = r.json()["data"]["id"]
    print(f"1. POST /course                 → {r.status_code}  id={course_id}")

    lecture_ids = []
    for i, title in enumerate(["Setup", "Variables", "Functions"], start=1):
        r = client.post(
            f"/api/v1/course/c/{course_id}/lectures",
            json={"title": title, "duration": 300, "isPreview": i == 1},
            headers=author,
        )
        lecture_ids.append(r.json()["data"]["id"])
    print(f"2. POST /lectures x3            → {r.status_code}")

    r = client.patch(
        f"/api/v1/course/c/{course_id}/publish",
        json={"isPublished": True},
        headers=author,
    )
    print(f"3. PATCH /publish               → {r.status_code}")

    # ── Step 2: student checks out ───────────────────────────────────
    r = client.post(
        "/api/v1/purchase/checkout/create-checkout-session",
        json={"courseId": course_id},
        headers=student,
    )
    checkout_url = r.json()["data"]["checkoutUrl"]
    session_id = checkout_url.rsplit("/", 1)[-1]
    print(f"4. POST /checkout               → {r.status_code}  {checkout_url}")

    # ── Step 3: gateway delivers the (signed) webhook twice ─────────
    payload = gateway.build_event(session_id)
    for attempt in (1, 2):
        r = client.post(
            "/api/v1/purchase/webhook",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload, gateway.webhook_secret)},
        )
        print(f"5.{attempt} POST /webhook             → {r.status_code}  {r.json()}")

    r = client.get(
        f"/api/v1/purchase/course/{course_id}/detail-with-status", headers=student
    )
    print(f"6. GET detail-with-status       → isPurchased={r.json()['data']['isPurchased']}")

    # ── Step 4: student works through the lectures ───────────────────
    for lecture_id in lecture_ids[:2]:
        client.patch(
            f"/api/v1/progress/{course_id}/lectures/{lecture_id}", headers=student
        )
    r = client.get(f"/api/v1/progress/{course_id}", headers=student)
    data = r.json()["data"]
    print(
        f"7. GET /progress                → {data['completionPercentage']}% "
        f"completed={data['isCompleted']}"
    )


if __name__ == "__main__":
    main()
