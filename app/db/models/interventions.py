"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import date, datetime, time

from sqlalchemy import (
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    Time,
    UniqueConstraint,
    false,
    true,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.enums import InterventionStatus, InterventionUrgency, TimeSlotStatus

if TYPE_CHECKING:
    from app.db.models import Lot, User


class Intervention(Base):
    """
    A maintenance intervention on a lot.

    Status only changes through app.services.intervention_status transitions.
    team_id is set at creation and never reassigned.
    """

    __tablename__ = "interventions"
    __table_args__ = (
        Index("idx_interventions_team_status", "team_id", "status"),
        Index("idx_interventions_lot", "lot_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    reference: Mapped[str | None] = mapped_column(String(50), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(30),
        default=InterventionStatus.REQUESTED.value,
        server_default=text(f"'{InterventionStatus.REQUESTED.value}'"),
        nullable=False,
    )
    urgency: Mapped[str] = mapped_column(
        String(20),
        default=InterventionUrgency.NORMAL.value,
        server_default=text(f"'{InterventionUrgency.NORMAL.value}'"),
        nullable=False,
    )
    team_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )
    lot_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("lots.id", ondelete="SET NULL"), nullable=True
    )
    scheduled_date: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )

    lot: Mapped["Lot | None"] = relationship()
    assignments: Mapped[list["InterventionAssignment"]] = relationship(
        back_populates="intervention", cascade="all, delete-orphan"
    )
    time_slots: Mapped[list["InterventionTimeSlot"]] = relationship(
        back_populates="intervention",
        cascade="all, delete-orphan",
        order_by="InterventionTimeSlot.slot_date",
    )


class InterventionAssignment(Base):
    """Links a user to an intervention with a role (tenant, manager, provider)."""

    __tablename__ = "intervention_assignments"
    __table_args__ = (
        UniqueConstraint(
            "intervention_id", "user_id", "role", name="uq_intervention_assignment"
        ),
        Index("idx_assignments_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    intervention_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("interventions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    # Only meaningful within a role group
    is_primary: Mapped[bool] = mapped_column(
        default=False, server_default=false(), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    intervention: Mapped["Intervention"] = relationship(back_populates="assignments")
    user: Mapped["User"] = relationship()


class InterventionTimeSlot(Base):
    """
    A proposed or confirmed time window for an intervention.

    At most one selected slot per intervention (partial unique index).
    Once it exists the slot set is locked against re-proposal.
    """

    __tablename__ = "intervention_time_slots"
    __table_args__ = (
        Index("idx_time_slots_intervention", "intervention_id", "status"),
        Index(
            "uq_time_slot_selected",
            "intervention_id",
            unique=True,
            postgresql_where=text(f"status = '{TimeSlotStatus.SELECTED.value}'"),
            sqlite_where=text(f"status = '{TimeSlotStatus.SELECTED.value}'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    intervention_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("interventions.id", ondelete="CASCADE"), nullable=False
    )
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=TimeSlotStatus.PENDING.value,
        server_default=text(f"'{TimeSlotStatus.PENDING.value}'"),
        nullable=False,
    )
    proposed_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    selected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    intervention: Mapped["Intervention"] = relationship(back_populates="time_slots")


class InterventionComment(Base):
    """Append-only audit comment on an intervention."""

    __tablename__ = "intervention_comments"
    __table_args__ = (Index("idx_comments_intervention", "intervention_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    intervention_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("interventions.id", ondelete="CASCADE"), nullable=False
    )
    author_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(
        default=True, server_default=true(), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
