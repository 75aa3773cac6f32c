"""Identity directory: maps external auth principals to internal actors.

Actor.id is the one canonical identity key.  auth_id (the provider's
subject) and email are lookups that lead to it; staff assignment ids are
never treated as identities.
"""

from __future__ import annotations

import logging
from uuid import UUID

from campus_core.core.errors import IntegrityViolation, NotFoundError
from campus_core.models.actor import Actor, ActorType
from campus_core.repos.actor_repo import ActorRepo

logger = logging.getLogger(__name__)


async def bootstrap_actor(
    actors: ActorRepo, *, auth_id: str, email: str, name: str = ""
) -> Actor:
    """Resolve the actor for a freshly authenticated principal.

    1. Already linked by auth_id: return it.
    2. Pre-provisioned by email with no auth_id yet: link it.
    3. Unknown email: provision a new student actor.

    An email that is already linked to a different auth_id is an
    IntegrityViolation; the directory never re-points an identity.
    """
    auth_id = auth_id.strip()
    email = email.strip().lower()
    if not auth_id:
        raise IntegrityViolation("auth_id must be non-empty")

    linked = await actors.get_by_auth_id(auth_id)
    if linked is not None:
        return linked

    if not email:
        raise IntegrityViolation("email claim is required to link an identity")

    existing = await actors.get_by_email(email)
    if existing is not None:
        if existing.auth_id is not None and existing.auth_id != auth_id:
            logger.warning(
                "Identity link refused: email=%s already linked to another principal",
                email,
            )
            raise IntegrityViolation("email is linked to a different principal")
        updated = await actors.link_auth_id(existing.id, auth_id)
        if updated is None:
            raise NotFoundError(f"actor {existing.id} not found")
        logger.info("Linked actor id=%s to auth principal", updated.id)
        return updated

    return await provision_actor(
        actors, email=email, actor_type=ActorType.STUDENT, name=name, auth_id=auth_id
    )


async def provision_actor(
    actors: ActorRepo,
    *,
    email: str,
    actor_type: ActorType,
    name: str = "",
    auth_id: str | None = None,
) -> Actor:
    if not email.strip():
        raise IntegrityViolation("email must be non-empty")
    actor = Actor.new(email=email, actor_type=actor_type, name=name, auth_id=auth_id)
    try:
        await actors.add(actor)
    except ValueError as e:
        raise IntegrityViolation(str(e)) from None
    logger.info("Provisioned actor id=%s type=%s", actor.id, actor.actor_type.value)
    return actor


async def deactivate_actor(actors: ActorRepo, actor_id: UUID) -> Actor:
    """Actors are deactivated, never deleted, so audit rows keep resolving."""
    updated = await actors.set_active(actor_id, False)
    if updated is None:
        raise NotFoundError(f"actor {actor_id} not found")
    logger.info("Deactivated actor id=%s", actor_id)
    return updated
