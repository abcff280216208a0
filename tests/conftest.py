from __future__ import annotations

import os
import sys
from decimal import Decimal
from pathlib import Path

# Tests always run against the in-memory backends and the local dev key.
for _var in (
    "DATABASE_URL",
    "REDIS_URL",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "JWT_PUBLIC_KEY",
):
    os.environ.pop(_var, None)
os.environ.setdefault("APP_ENV", "test")

# Ensure repo root is on sys.path so `import lms` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import asyncio  # noqa: E402
from dataclasses import replace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from lms.api import dependencies  # noqa: E402
from lms.api.ratelimit import rate_limiter  # noqa: E402
from lms.main import app  # noqa: E402
from lms.models.course import Course, Lecture  # noqa: E402
from lms.services import token_service  # noqa: E402
from lms.services.payment_gateway import InMemoryPaymentGateway, sign_payload  # noqa: E402

INSTRUCTOR_ID = "instructor-1"


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Clear the shared in-memory repositories between tests."""
    dependencies.course_repo._by_id.clear()
    dependencies.progress_repo.clear()
    dependencies.purchase_repo._by_id.clear()
    dependencies.enrollment_repo._store.clear()


@pytest.fixture(autouse=True)
def reset_gateway() -> None:
    assert isinstance(dependencies.payment_gateway, InMemoryPaymentGateway)
    dependencies.payment_gateway.reset()


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Clear rate limit buckets between tests so limits don't bleed."""
    if hasattr(rate_limiter, "clear"):
        rate_limiter.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def gateway() -> InMemoryPaymentGateway:
    assert isinstance(dependencies.payment_gateway, InMemoryPaymentGateway)
    return dependencies.payment_gateway


def mint_token(username: str = "test-user", roles: list[str] | None = None) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(username: str = "test-user", roles: list[str] | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(username, roles)}"}


@pytest.fixture
def token() -> str:
    """Token with the default student role."""
    return mint_token()


@pytest.fixture
def instructor_token() -> str:
    return mint_token(username=INSTRUCTOR_ID, roles=["instructor"])


# ---------------------------------------------------------------------------
# Catalog helpers
# ---------------------------------------------------------------------------


def create_test_course(
    *,
    title: str = "Intro to Testing",
    lectures: int = 3,
    price: Decimal = Decimal("499"),
    published: bool = True,
    instructor_id: str = INSTRUCTOR_ID,
    preview_first: bool = False,
    **fields,
) -> Course:
    """Create and persist a course (and its lectures) in the in-memory repo."""
    course = Course.new(title=title, instructor_id=instructor_id, price=price, **fields)
    repo = dependencies.course_repo
    asyncio.run(repo.add(course))
    for i in range(1, lectures + 1):
        lecture = Lecture.new(
            course_id=course.id,
            title=f"Lecture {i}",
            position=i,
            is_preview=preview_first and i == 1,
        )
        asyncio.run(repo.add_lecture(lecture))
    if published:
        asyncio.run(repo.update(replace(course, is_published=True)))
    stored = asyncio.run(repo.get(course.id))
    assert stored is not None
    return stored


def signed_headers(payload: bytes, secret: str = "whsec_dev") -> dict[str, str]:
    return {"Stripe-Signature": sign_payload(payload, secret)}
