"""create campus core schema

Revision ID: 3b9e1c7d2a40
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9e1c7d2a40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid(name: str, *fk: sa.ForeignKey, **kw) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), *fk, **kw)


def upgrade() -> None:
    op.create_table(
        "actors",
        _uuid("id", primary_key=True),
        sa.Column("auth_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("actor_type", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "companies",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
    )
    op.create_table(
        "schools",
        _uuid("id", primary_key=True),
        _uuid("company_id", sa.ForeignKey("companies.id"), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
    )
    op.create_table(
        "branches",
        _uuid("id", primary_key=True),
        _uuid("school_id", sa.ForeignKey("schools.id"), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
    )
    op.create_table(
        "academic_groups",
        _uuid("id", primary_key=True),
        _uuid("company_id", sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
    )
    op.create_table(
        "academic_group_schools",
        _uuid("group_id", sa.ForeignKey("academic_groups.id"), primary_key=True),
        _uuid("school_id", sa.ForeignKey("schools.id"), primary_key=True),
    )
    op.create_table(
        "students",
        _uuid("id", primary_key=True),
        _uuid("actor_id", sa.ForeignKey("actors.id"), nullable=False, unique=True),
        _uuid("company_id", sa.ForeignKey("companies.id"), nullable=False),
        _uuid("school_id", sa.ForeignKey("schools.id"), nullable=True),
        _uuid("branch_id", sa.ForeignKey("branches.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "entity_staff_assignments",
        _uuid("id", primary_key=True),
        _uuid("actor_id", sa.ForeignKey("actors.id"), nullable=False),
        _uuid("company_id", sa.ForeignKey("companies.id"), nullable=False),
        sa.Column("admin_level", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index(
        "ix_entity_staff_assignments_actor_id", "entity_staff_assignments", ["actor_id"]
    )
    op.create_table(
        "entity_staff_scope_schools",
        _uuid(
            "assignment_id",
            sa.ForeignKey("entity_staff_assignments.id"),
            primary_key=True,
        ),
        _uuid("school_id", sa.ForeignKey("schools.id"), primary_key=True),
    )
    op.create_table(
        "entity_staff_scope_branches",
        _uuid(
            "assignment_id",
            sa.ForeignKey("entity_staff_assignments.id"),
            primary_key=True,
        ),
        _uuid("branch_id", sa.ForeignKey("branches.id"), primary_key=True),
    )
    op.create_table(
        "academic_offerings",
        _uuid("id", primary_key=True),
        sa.Column("provider_name", sa.String(length=255), nullable=False),
        sa.Column("program_name", sa.String(length=255), nullable=False),
        sa.Column("subject_name", sa.String(length=255), nullable=False),
    )
    op.create_table(
        "licenses",
        _uuid("id", primary_key=True),
        _uuid("company_id", sa.ForeignKey("companies.id"), nullable=False),
        _uuid("offering_id", sa.ForeignKey("academic_offerings.id"), nullable=False),
        sa.Column("total_quantity", sa.Integer(), nullable=False),
        sa.Column("used_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column(
            "school_ids",
            postgresql.ARRAY(postgresql.UUID(as_uuid=True)),
            nullable=False,
            server_default="{}",
        ),
        sa.CheckConstraint("total_quantity > 0", name="ck_licenses_total_positive"),
        sa.CheckConstraint(
            "used_quantity >= 0 AND used_quantity <= total_quantity",
            name="ck_licenses_used_within_total",
        ),
        sa.CheckConstraint("end_date > start_date", name="ck_licenses_valid_window"),
    )
    op.create_index("ix_licenses_company_id", "licenses", ["company_id"])
    op.create_index(
        "uq_licenses_active_offering",
        "licenses",
        ["company_id", "offering_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_table(
        "license_assignments",
        _uuid("id", primary_key=True),
        _uuid("license_id", sa.ForeignKey("licenses.id"), nullable=False),
        _uuid("student_id", sa.ForeignKey("students.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("assigned_at", sa.BigInteger(), nullable=False),
        _uuid("assigned_by", sa.ForeignKey("actors.id"), nullable=True),
        sa.Column("expires_at", sa.Date(), nullable=False),
        sa.Column("revoked_at", sa.BigInteger(), nullable=True),
        sa.UniqueConstraint("license_id", "student_id", name="uq_license_assignment_pair"),
    )
    op.create_table(
        "license_actions",
        _uuid("id", primary_key=True),
        _uuid("license_id", sa.ForeignKey("licenses.id"), nullable=False),
        sa.Column("action_type", sa.String(length=16), nullable=False),
        sa.Column("change_quantity", sa.Integer(), nullable=True),
        sa.Column("new_end_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        _uuid("performed_by", sa.ForeignKey("actors.id"), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.CheckConstraint(
            "change_quantity IS NULL OR change_quantity > 0",
            name="ck_license_actions_quantity_positive",
        ),
        sa.CheckConstraint(
            "action_type != 'EXPAND' OR change_quantity IS NOT NULL",
            name="ck_license_actions_expand_has_quantity",
        ),
        sa.CheckConstraint(
            "action_type NOT IN ('EXTEND', 'RENEW') OR new_end_date IS NOT NULL",
            name="ck_license_actions_extend_has_date",
        ),
    )
    op.create_index("ix_license_actions_license_id", "license_actions", ["license_id"])
    op.create_table(
        "impersonation_audit",
        _uuid("id", primary_key=True),
        _uuid("real_actor_id", sa.ForeignKey("actors.id"), nullable=False),
        _uuid("effective_actor_id", sa.ForeignKey("actors.id"), nullable=False),
        sa.Column("method", sa.String(length=8), nullable=False),
        sa.Column("path", sa.Text(), nullable=False),
        sa.Column("occurred_at", sa.BigInteger(), nullable=False),
    )
    op.create_index(
        "ix_impersonation_audit_real_actor_id", "impersonation_audit", ["real_actor_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_impersonation_audit_real_actor_id", table_name="impersonation_audit")
    op.drop_table("impersonation_audit")
    op.drop_index("ix_license_actions_license_id", table_name="license_actions")
    op.drop_table("license_actions")
    op.drop_table("license_assignments")
    op.drop_index("uq_licenses_active_offering", table_name="licenses")
    op.drop_index("ix_licenses_company_id", table_name="licenses")
    op.drop_table("licenses")
    op.drop_table("academic_offerings")
    op.drop_table("entity_staff_scope_branches")
    op.drop_table("entity_staff_scope_schools")
    op.drop_index(
        "ix_entity_staff_assignments_actor_id", table_name="entity_staff_assignments"
    )
    op.drop_table("entity_staff_assignments")
    op.drop_table("students")
    op.drop_table("academic_group_schools")
    op.drop_table("academic_groups")
    op.drop_table("branches")
    op.drop_table("schools")
    op.drop_table("companies")
    op.drop_table("actors")
