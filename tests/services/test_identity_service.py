from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from campus_core.core.errors import IntegrityViolation, NotFoundError
from campus_core.models.actor import ActorType
from campus_core.services import identity_service
from tests.conftest import seed_actor, stores


def _bootstrap(auth_id: str, email: str):
    return asyncio.run(
        identity_service.bootstrap_actor(stores.actors, auth_id=auth_id, email=email)
    )


def test_bootstrap_returns_already_linked_actor() -> None:
    actor = seed_actor(ActorType.TEACHER)

    resolved = _bootstrap(actor.auth_id, "ignored@example.com")

    assert resolved.id == actor.id


def test_bootstrap_links_pre_provisioned_actor_by_email() -> None:
    actor = seed_actor(ActorType.ENTITY_STAFF, email="staff@example.com", linked=False)

    resolved = _bootstrap("idp|abc", "  STAFF@example.com ")

    assert resolved.id == actor.id
    assert resolved.auth_id == "idp|abc"
    assert resolved.actor_type is ActorType.ENTITY_STAFF
    assert asyncio.run(stores.actors.get_by_auth_id("idp|abc")).id == actor.id


def test_bootstrap_provisions_unknown_email_as_student() -> None:
    resolved = _bootstrap("idp|new", "new@example.com")

    assert resolved.actor_type is ActorType.STUDENT
    assert resolved.email == "new@example.com"
    assert resolved.auth_id == "idp|new"


def test_bootstrap_is_idempotent() -> None:
    first = _bootstrap("idp|same", "same@example.com")
    second = _bootstrap("idp|same", "same@example.com")

    assert first.id == second.id


def test_bootstrap_refuses_to_repoint_a_linked_email() -> None:
    seed_actor(ActorType.TEACHER, email="taken@example.com")

    with pytest.raises(IntegrityViolation, match="different principal"):
        _bootstrap("idp|intruder", "taken@example.com")


def test_bootstrap_requires_email_for_unlinked_principal() -> None:
    with pytest.raises(IntegrityViolation, match="email"):
        _bootstrap("idp|nomail", "")


def test_bootstrap_requires_auth_id() -> None:
    with pytest.raises(IntegrityViolation):
        _bootstrap("   ", "x@example.com")


def test_provision_rejects_duplicate_email() -> None:
    seed_actor(ActorType.TEACHER, email="dupe@example.com")

    with pytest.raises(IntegrityViolation):
        asyncio.run(
            identity_service.provision_actor(
                stores.actors, email="DUPE@example.com", actor_type=ActorType.STUDENT
            )
        )


def test_deactivate_actor() -> None:
    actor = seed_actor(ActorType.TEACHER)

    updated = asyncio.run(identity_service.deactivate_actor(stores.actors, actor.id))

    assert updated.is_active is False
    with pytest.raises(NotFoundError):
        asyncio.run(identity_service.deactivate_actor(stores.actors, uuid4()))
