from __future__ import annotations
import uuid
from datetime import date, datetime, time
from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    String, Text, Integer, Date, Time, DateTime, Boolean,
    ForeignKey, Index, false, literal, select, union_all,
)
from sqlalchemy.sql import func

from ownurvoice.db import Base

ROLES = ("therapist", "patient", "parent_carer")


def new_id() -> str:
    return str(uuid.uuid4())


class Account(Base):
    """Local identity-provider account (``sql`` backend only)."""
    __tablename__ = "account"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class ProfileColumns:
    """Columns shared by the three role tables."""

    # profile id; sessions and exercises point at this
    user_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    # identity-provider account; NULL for patients added by a therapist who have not registered yet
    account_id: Mapped[Optional[str]] = mapped_column(String(36), unique=True, nullable=True)
    username: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String, index=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    user_role: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Therapist(ProfileColumns, Base):
    __tablename__ = "therapist"

    clinic_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    years_of_experience: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    qualification: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    therapist_profile: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Patient(ProfileColumns, Base):
    __tablename__ = "patient"

    therapy_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    preferred_contact_method: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    patient_profile: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ParentCarer(ProfileColumns, Base):
    __tablename__ = "parent_carer"

    relationship_to_patient: Mapped[Optional[str]] = mapped_column(String, nullable=True)


PROFILE_MODELS = {
    "therapist": Therapist,
    "patient": Patient,
    "parent_carer": ParentCarer,
}


class TherapySession(Base):
    __tablename__ = "session"
    __table_args__ = (
        Index("idx_session_therapist_date", "therapist_id", "session_date"),
        Index("idx_session_patient_date", "patient_id", "session_date"),
    )

    session_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    patient_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("patient.user_id", ondelete="SET NULL"), nullable=True
    )
    therapist_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("therapist.user_id", ondelete="SET NULL"), nullable=True
    )
    session_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    session_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    session_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, default="scheduled", nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Goal(Base):
    __tablename__ = "goal"

    goal_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("session.session_id", ondelete="CASCADE"), index=True, nullable=False
    )
    goal_description: Mapped[str] = mapped_column(Text, nullable=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    target_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, default="active", nullable=False)
    priority: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Exercise(Base):
    __tablename__ = "exercise"

    exercise_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    created_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("therapist.user_id", ondelete="SET NULL"), index=True, nullable=True
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    difficulty_level: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    recommended_frequency: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class SessionExercise(Base):
    __tablename__ = "session_exercise"

    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("session.session_id", ondelete="CASCADE"), primary_key=True
    )
    exercise_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("exercise.exercise_id", ondelete="CASCADE"), primary_key=True
    )
    completed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, server_default=false()
    )
    completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class GoalExerciseSet(Base):
    __tablename__ = "goal_exercise_set"

    goal_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("goal.goal_id", ondelete="CASCADE"), primary_key=True
    )
    exercise_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("exercise.exercise_id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


def user_directory():
    """
    Every profile row with a role discriminator, as one selectable.
    Same shape as the ``user_directory`` view on the hosted store.
    """
    parts = [
        select(
            model.user_id.label("user_id"),
            model.account_id.label("account_id"),
            model.username.label("username"),
            model.email.label("email"),
            literal(role).label("user_role"),
        )
        for role, model in PROFILE_MODELS.items()
    ]
    return union_all(*parts).subquery("user_directory")
