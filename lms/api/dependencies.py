"""Shared FastAPI dependencies: authentication, role guards, services.

Repositories follow the engine: with DATABASE_URL set each request gets
Pg* repos bound to its own AsyncSession (one transaction per request);
otherwise every request shares the module-level in-memory repos below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from lms.core.config import SETTINGS
from lms.db.engine import get_async_session
from lms.models.principal import ROLE_ADMIN, ROLE_INSTRUCTOR, ROLE_STUDENT, Principal
from lms.repos.course_repo import CourseRepo, InMemoryCourseRepo
from lms.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from lms.repos.pg_course_repo import PgCourseRepo
from lms.repos.pg_enrollment_repo import PgEnrollmentRepo
from lms.repos.pg_progress_repo import PgProgressRepo
from lms.repos.pg_purchase_repo import PgPurchaseRepo
from lms.repos.progress_repo import InMemoryProgressRepo, ProgressRepo
from lms.repos.purchase_repo import InMemoryPurchaseRepo, PurchaseRepo
from lms.services import token_service
from lms.services.course_service import CourseService
from lms.services.payment_gateway import (
    InMemoryPaymentGateway,
    PaymentGateway,
    StripeGateway,
)
from lms.services.progress_service import ProgressService
from lms.services.purchase_service import PurchaseService

logger = logging.getLogger(__name__)

# Part of every router's own prefix so route templates carry the version
API_PREFIX = "/api/v1"

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Principal:
    """Validate the bearer JWT and return the caller as a Principal."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Not authenticated")
    try:
        claims = token_service.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    principal = Principal(
        user_id=str(claims["sub"]),
        roles=frozenset(claims.get("roles") or [ROLE_STUDENT]),
    )
    logger.debug(
        "Token validated for user=%s roles=%s", principal.user_id, principal.roles
    )
    return principal


def require_any_role(roles: set[str]):
    """Dependency factory: demand at least one of the given roles."""

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


CurrentUser = Annotated[Principal, Depends(require_user)]
Instructor = Annotated[Principal, Depends(require_any_role({ROLE_INSTRUCTOR, ROLE_ADMIN}))]


# ---------------------------------------------------------------------------
# Repositories and services
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Repos:
    courses: CourseRepo
    progress: ProgressRepo
    purchases: PurchaseRepo
    enrollments: EnrollmentRepo


course_repo = InMemoryCourseRepo()
progress_repo = InMemoryProgressRepo()
purchase_repo = InMemoryPurchaseRepo()
enrollment_repo = InMemoryEnrollmentRepo()

_IN_MEMORY = Repos(
    courses=course_repo,
    progress=progress_repo,
    purchases=purchase_repo,
    enrollments=enrollment_repo,
)

payment_gateway: PaymentGateway
if SETTINGS.stripe_secret_key and SETTINGS.stripe_webhook_secret:
    payment_gateway = StripeGateway(
        SETTINGS.stripe_secret_key, SETTINGS.stripe_webhook_secret
    )
else:
    payment_gateway = InMemoryPaymentGateway()


def get_repos(
    # Function scope: the commit finishes before the response is sent, so a
    # failed commit turns into a 500 instead of a 2xx the client trusts
    session: Annotated[
        AsyncSession | None, Depends(get_async_session, scope="function")
    ],
) -> Repos:
    if session is None:
        return _IN_MEMORY
    return Repos(
        courses=PgCourseRepo(session),
        progress=PgProgressRepo(session),
        purchases=PgPurchaseRepo(session),
        enrollments=PgEnrollmentRepo(session),
    )


def get_progress_service(
    repos: Annotated[Repos, Depends(get_repos)],
) -> ProgressService:
    return ProgressService(repos.courses, repos.progress)


def get_purchase_service(
    repos: Annotated[Repos, Depends(get_repos)],
) -> PurchaseService:
    return PurchaseService(
        repos.courses,
        repos.purchases,
        repos.enrollments,
        payment_gateway,
        client_url=SETTINGS.client_url,
        currency=SETTINGS.payment_currency,
    )


def get_course_service(
    repos: Annotated[Repos, Depends(get_repos)],
) -> CourseService:
    return CourseService(repos.courses, repos.enrollments)
