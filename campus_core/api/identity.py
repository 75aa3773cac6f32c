"""Identity directory endpoints.

POST /v1/identity/bootstrap is the only authenticated endpoint that works
before the caller's principal is linked to an actor: it links by email
(or provisions a new actor) and returns the internal identity every later
scope check keys on.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from campus_core.api.deps import (
    OperatorDep,
    PrincipalDep,
    ResolverDep,
    StoresDep,
    http_error,
    require_claims,
)
from campus_core.core.errors import CampusCoreError
from campus_core.models.actor import Actor, ActorType
from campus_core.services import identity_service
from campus_core.services.access_policies import filter_visible, staff_assignment_visible

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["identity"])


class ActorOut(BaseModel):
    id: str
    email: str
    name: str
    actor_type: str
    is_active: bool
    linked: bool


class StaffRoleOut(BaseModel):
    assignment_id: str
    company_id: str
    admin_level: str


class MeOut(BaseModel):
    actor: ActorOut
    real_actor_id: str
    impersonating: bool
    staff_roles: list[StaffRoleOut]


class ProvisionIn(BaseModel):
    email: str
    actor_type: ActorType
    name: str = ""


class AuditOut(BaseModel):
    id: str
    effective_actor_id: str
    method: str
    path: str
    occurred_at: int


def _actor_out(actor: Actor) -> ActorOut:
    return ActorOut(
        id=str(actor.id),
        email=actor.email,
        name=actor.name,
        actor_type=actor.actor_type.value,
        is_active=actor.is_active,
        linked=actor.auth_id is not None,
    )


@router.post("/identity/bootstrap", response_model=ActorOut)
async def bootstrap(
    claims: Annotated[dict, Depends(require_claims)],
    stores: StoresDep,
) -> ActorOut:
    try:
        actor = await identity_service.bootstrap_actor(
            stores.actors,
            auth_id=claims["sub"],
            email=claims.get("email", ""),
            name=claims.get("name", ""),
        )
    except CampusCoreError as e:
        raise http_error(e) from None
    return _actor_out(actor)


@router.get("/identity/me", response_model=MeOut)
async def me(principal: PrincipalDep, stores: StoresDep, resolver: ResolverDep) -> MeOut:
    actor = await stores.actors.get_by_id(principal.actor_id)
    if actor is None:
        # Removed between require_principal and this read.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="actor not found")
    assignments = await filter_visible(
        resolver,
        principal.actor_id,
        [a for a in await stores.staff.list_by_actor(actor.id) if a.is_active],
        staff_assignment_visible,
    )
    return MeOut(
        actor=_actor_out(actor),
        real_actor_id=str(principal.real_actor_id),
        impersonating=principal.is_impersonating,
        staff_roles=[
            StaffRoleOut(
                assignment_id=str(a.id),
                company_id=str(a.company_id),
                admin_level=a.admin_level.value,
            )
            for a in assignments
        ],
    )


# --- Operator-only directory management ---


@router.post("/actors", response_model=ActorOut, status_code=status.HTTP_201_CREATED)
async def provision_actor(
    body: ProvisionIn, _operator: OperatorDep, stores: StoresDep
) -> ActorOut:
    """Pre-provision an actor; the first sign-in with this email links it."""
    try:
        actor = await identity_service.provision_actor(
            stores.actors, email=body.email, actor_type=body.actor_type, name=body.name
        )
    except CampusCoreError as e:
        raise http_error(e) from None
    return _actor_out(actor)


@router.post("/actors/{actor_id}/deactivate", response_model=ActorOut)
async def deactivate_actor(
    actor_id: UUID, operator: OperatorDep, stores: StoresDep
) -> ActorOut:
    try:
        actor = await identity_service.deactivate_actor(stores.actors, actor_id)
    except CampusCoreError as e:
        raise http_error(e) from None
    logger.info("Actor %s deactivated by %s", actor_id, operator.real_actor_id)
    return _actor_out(actor)


@router.get("/actors/{actor_id}/impersonation-audit", response_model=list[AuditOut])
async def impersonation_audit(
    actor_id: UUID, _operator: OperatorDep, stores: StoresDep
) -> list[AuditOut]:
    """Requests the given operator evaluated as someone else."""
    entries = await stores.audit.list_by_real_actor(actor_id)
    return [
        AuditOut(
            id=str(e.id),
            effective_actor_id=str(e.effective_actor_id),
            method=e.method,
            path=e.path,
            occurred_at=e.occurred_at,
        )
        for e in entries
    ]
