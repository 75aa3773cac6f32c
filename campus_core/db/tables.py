"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in campus_core/models/.
Repos convert between SQLAlchemy rows and domain dataclasses.

Invariants the schema enforces on its own, independent of the repos:
  - licenses: 0 <= used_quantity <= total_quantity, total_quantity > 0
  - license_assignments: one row per (license_id, student_id)
  - license_actions: EXPAND carries change_quantity, EXTEND/RENEW carry
    new_end_date
"""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from campus_core.db.engine import Base

# --- Identity directory ---


class ActorRow(Base):
    __tablename__ = "actors"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    auth_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    actor_type: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # student|teacher|entity_staff|system_operator
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# --- Organizational graph ---


class CompanyRow(Base):
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="active"
    )  # active|inactive


class SchoolRow(Base):
    __tablename__ = "schools"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    company_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")


class BranchRow(Base):
    __tablename__ = "branches"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    school_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("schools.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")


class AcademicGroupRow(Base):
    __tablename__ = "academic_groups"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False
    )
    kind: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # grade_level|department|academic_year
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class AcademicGroupSchoolRow(Base):
    __tablename__ = "academic_group_schools"

    group_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("academic_groups.id"), primary_key=True
    )
    school_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("schools.id"), primary_key=True
    )


class StudentRow(Base):
    __tablename__ = "students"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    actor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("actors.id"), unique=True, nullable=False
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False
    )
    school_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("schools.id"), nullable=True
    )
    branch_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("branches.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# --- Entity staff ---


class EntityStaffAssignmentRow(Base):
    __tablename__ = "entity_staff_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    actor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("actors.id"), nullable=False, index=True
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False
    )
    admin_level: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # entity_admin|sub_entity_admin|school_admin|branch_admin
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class EntityStaffScopeSchoolRow(Base):
    __tablename__ = "entity_staff_scope_schools"

    assignment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("entity_staff_assignments.id"),
        primary_key=True,
    )
    school_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("schools.id"), primary_key=True
    )


class EntityStaffScopeBranchRow(Base):
    __tablename__ = "entity_staff_scope_branches"

    assignment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("entity_staff_assignments.id"),
        primary_key=True,
    )
    branch_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("branches.id"), primary_key=True
    )


# --- License ledger ---


class AcademicOfferingRow(Base):
    __tablename__ = "academic_offerings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    provider_name: Mapped[str] = mapped_column(String(255), nullable=False)
    program_name: Mapped[str] = mapped_column(String(255), nullable=False)
    subject_name: Mapped[str] = mapped_column(String(255), nullable=False)


class LicenseRow(Base):
    __tablename__ = "licenses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True
    )
    offering_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("academic_offerings.id"), nullable=False
    )
    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    used_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="active"
    )  # active|inactive
    school_ids: Mapped[list[uuid.UUID]] = mapped_column(
        ARRAY(UUID(as_uuid=True)), nullable=False, default=[]
    )

    __table_args__ = (
        CheckConstraint("total_quantity > 0", name="ck_licenses_total_positive"),
        CheckConstraint(
            "used_quantity >= 0 AND used_quantity <= total_quantity",
            name="ck_licenses_used_within_total",
        ),
        CheckConstraint("end_date > start_date", name="ck_licenses_valid_window"),
        # One active license per (company, offering); more seats go through EXPAND.
        Index(
            "uq_licenses_active_offering",
            "company_id",
            "offering_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
    )


class LicenseAssignmentRow(Base):
    __tablename__ = "license_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    license_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("licenses.id"), nullable=False
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("students.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    assigned_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    assigned_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("actors.id"), nullable=True
    )
    expires_at: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    revoked_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    __table_args__ = (
        UniqueConstraint("license_id", "student_id", name="uq_license_assignment_pair"),
    )


class LicenseActionRow(Base):
    """Append-only: the repo only ever inserts."""

    __tablename__ = "license_actions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    license_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("licenses.id"), nullable=False, index=True
    )
    action_type: Mapped[str] = mapped_column(
        String(16), nullable=False
    )  # EXPAND|EXTEND|RENEW
    change_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    new_end_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    performed_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("actors.id"), nullable=True
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "change_quantity IS NULL OR change_quantity > 0",
            name="ck_license_actions_quantity_positive",
        ),
        CheckConstraint(
            "action_type != 'EXPAND' OR change_quantity IS NOT NULL",
            name="ck_license_actions_expand_has_quantity",
        ),
        CheckConstraint(
            "action_type NOT IN ('EXTEND', 'RENEW') OR new_end_date IS NOT NULL",
            name="ck_license_actions_extend_has_date",
        ),
    )


# --- Test/impersonation channel ---


class ImpersonationAuditRow(Base):
    __tablename__ = "impersonation_audit"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    real_actor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("actors.id"), nullable=False, index=True
    )
    effective_actor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("actors.id"), nullable=False
    )
    method: Mapped[str] = mapped_column(String(8), nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    occurred_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
