"""Shared FastAPI dependencies: repository wiring, authentication, scope.

Repository wiring follows the same switch as db/engine.py and
db/redis.py: with DATABASE_URL set, every request gets PostgreSQL repos
bound to one session (committed or rolled back as a unit by
get_async_session); without it, the module-level in-memory repos are
shared by all requests.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from campus_core.core.config import SETTINGS
from campus_core.core.errors import (
    AccessDenied,
    CampusCoreError,
    IntegrityViolation,
    NotFoundError,
)
from campus_core.core.metrics import IMPERSONATED_REQUESTS
from campus_core.db.engine import async_session_factory, get_async_session
from campus_core.middleware.request_context import actor_id_var, real_actor_id_var
from campus_core.models.actor import Actor
from campus_core.models.audit import ImpersonationAudit
from campus_core.models.principal import Principal
from campus_core.repos.actor_repo import (
    ActorRepo,
    InMemoryActorRepo,
    InMemoryStudentRepo,
    StudentRepo,
)
from campus_core.repos.audit_repo import AuditRepo, InMemoryAuditRepo
from campus_core.repos.license_repo import InMemoryLicenseRepo, LicenseRepo
from campus_core.repos.org_repo import InMemoryOrgRepo, OrgRepo
from campus_core.repos.pg_actor_repo import PgActorRepo, PgStudentRepo
from campus_core.repos.pg_audit_repo import PgAuditRepo
from campus_core.repos.pg_license_repo import PgLicenseRepo
from campus_core.repos.pg_org_repo import PgOrgRepo
from campus_core.repos.pg_staff_repo import PgStaffRepo
from campus_core.repos.staff_repo import InMemoryStaffRepo, StaffRepo
from campus_core.services import token_service
from campus_core.services.scope_resolver import ScopeResolver

logger = logging.getLogger(__name__)

# Tokens come from the identity provider; tokenUrl only feeds the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


@dataclass(frozen=True, slots=True)
class Stores:
    actors: ActorRepo
    students: StudentRepo
    orgs: OrgRepo
    staff: StaffRepo
    licenses: LicenseRepo
    audit: AuditRepo


# --- Repository wiring ---

MEMORY_STORES = Stores(
    actors=InMemoryActorRepo(),
    students=InMemoryStudentRepo(),
    orgs=InMemoryOrgRepo(),
    staff=InMemoryStaffRepo(),
    licenses=InMemoryLicenseRepo(),
    audit=InMemoryAuditRepo(),
)


def pg_stores(session: AsyncSession) -> Stores:
    return Stores(
        actors=PgActorRepo(session),
        students=PgStudentRepo(session),
        orgs=PgOrgRepo(session),
        staff=PgStaffRepo(session),
        licenses=PgLicenseRepo(session),
        audit=PgAuditRepo(session),
    )


if async_session_factory is not None:

    async def get_stores(
        session: Annotated[AsyncSession, Depends(get_async_session)],
    ) -> Stores:
        return pg_stores(session)

else:

    async def get_stores() -> Stores:
        return MEMORY_STORES


StoresDep = Annotated[Stores, Depends(get_stores)]


def get_resolver(stores: StoresDep) -> ScopeResolver:
    """One resolver per request; FastAPI caches it across dependencies."""
    return ScopeResolver(stores.actors, stores.orgs, stores.staff)


ResolverDep = Annotated[ScopeResolver, Depends(get_resolver)]


# --- Error translation ---


def http_error(exc: CampusCoreError) -> HTTPException:
    """Map a service exception onto the HTTP status the routers return."""
    if isinstance(exc, AccessDenied):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, IntegrityViolation):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# --- Authentication ---


def require_claims(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> dict:
    """Validate the bearer token and return its claims."""
    try:
        return token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None


async def require_principal(
    request: Request,
    claims: Annotated[dict, Depends(require_claims)],
    stores: StoresDep,
    impersonate: Annotated[str | None, Header(alias="X-Impersonate-Actor")] = None,
) -> Principal:
    """Resolve the acting identity for this request.

    The token's subject must already be linked to an actor (see
    POST /v1/identity/bootstrap); every scope check keys on Actor.id.
    """
    actor = await stores.actors.get_by_auth_id(claims["sub"])
    if actor is None:
        logger.warning("Unlinked principal rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Identity not linked; call /v1/identity/bootstrap first",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not actor.is_active:
        logger.warning("Deactivated actor rejected actor_id=%s", actor.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Actor is deactivated"
        )

    effective = actor
    if impersonate is not None:
        effective = await _impersonation_target(request, actor, impersonate, stores)

    actor_id_var.set(str(effective.id))
    real_actor_id_var.set(str(actor.id))
    return Principal(
        actor_id=effective.id,
        actor_type=effective.actor_type,
        real_actor_id=actor.id,
        auth_id=claims["sub"],
    )


async def _impersonation_target(
    request: Request, real: Actor, raw_target: str, stores: Stores
) -> Actor:
    if not SETTINGS.impersonation_enabled:
        logger.warning("Impersonation refused (disabled) real_actor=%s", real.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Impersonation is disabled"
        )
    if not real.is_system_operator:
        logger.warning("Impersonation refused (not an operator) real_actor=%s", real.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only system operators may impersonate",
        )
    try:
        target_id = UUID(raw_target)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="X-Impersonate-Actor must be an actor id",
        ) from None

    target = await stores.actors.get_by_id(target_id)
    if target is None or not target.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Impersonation target not found"
        )
    if target.is_system_operator:
        logger.warning(
            "Impersonation refused (target is an operator) real_actor=%s target=%s",
            real.id,
            target.id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="System operators cannot be impersonated",
        )

    # Written before the request proceeds; if the audit row cannot be
    # stored the request fails.
    await stores.audit.append(
        ImpersonationAudit.new(
            real_actor_id=real.id,
            effective_actor_id=target.id,
            method=request.method,
            path=request.url.path,
            occurred_at=int(datetime.datetime.now(datetime.UTC).timestamp()),
        )
    )
    IMPERSONATED_REQUESTS.inc()
    logger.info(
        "Impersonating actor=%s real_actor=%s %s %s",
        target.id,
        real.id,
        request.method,
        request.url.path,
    )
    return target


PrincipalDep = Annotated[Principal, Depends(require_principal)]


async def require_system_operator(
    principal: PrincipalDep, resolver: ResolverDep
) -> Principal:
    if not await resolver.is_system_operator(principal.actor_id):
        logger.warning("Access denied: actor=%s is not a system operator", principal.actor_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
        )
    return principal


OperatorDep = Annotated[Principal, Depends(require_system_operator)]
