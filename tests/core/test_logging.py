from __future__ import annotations

import logging

import pytest

from campus_core.core.logging import _ContainerFormatter, setup_logging
from campus_core.middleware.request_context import actor_id_var, real_actor_id_var


def _record(level: int, msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="campus_core.services.license_ledger",
        level=level,
        pathname="license_ledger.py",
        lineno=120,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.parametrize(
    ("level_name", "expected"),
    [("debug", logging.DEBUG), ("warning", logging.WARNING), ("verbose", logging.INFO)],
)
def test_root_level_follows_log_level(level_name: str, expected: int) -> None:
    setup_logging(level_name)
    assert logging.getLogger().level == expected


def test_sql_echo_stays_quiet_at_debug() -> None:
    setup_logging("debug")

    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    assert logging.getLogger("uvicorn.access").level == logging.WARNING


def test_container_format_points_at_source_for_denials_only() -> None:
    fmt = _ContainerFormatter()

    outcome = fmt.format(_record(logging.INFO, "License assigned"))
    denial = fmt.format(_record(logging.WARNING, "Access denied"))

    assert "[license_ledger.py:" not in outcome
    assert "Access denied  [license_ledger.py:120]" in denial


def test_handler_tags_records_with_the_acting_identity() -> None:
    setup_logging("info", json_format=True)
    handler = logging.getLogger().handlers[0]
    record = _record(logging.INFO, "License assigned")

    actor_token = actor_id_var.set("effective-id")
    real_token = real_actor_id_var.set("operator-id")
    try:
        assert handler.filter(record)
    finally:
        actor_id_var.reset(actor_token)
        real_actor_id_var.reset(real_token)

    assert record.actor_id == "effective-id"  # type: ignore[attr-defined]
    assert record.real_actor_id == "operator-id"  # type: ignore[attr-defined]
