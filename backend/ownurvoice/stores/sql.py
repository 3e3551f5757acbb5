"""
SQLAlchemy-backed adapters: a local identity provider (``account`` table) and
the relational store. Each call opens its own AsyncSession so independent
reads can run concurrently under ``asyncio.gather``.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import func, inspect as sa_inspect, or_, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ownurvoice.exceptions import AuthError, IdentityError, StoreError
from ownurvoice.models import (
    Account, Exercise, Goal, GoalExerciseSet, PROFILE_MODELS, Patient,
    SessionExercise, TherapySession, user_directory,
)
from ownurvoice.security import hash_password, verify_password
from ownurvoice.stores.base import (
    IdentityAccount, IdentityProvider, PATIENT_SUMMARY, Row, Store, THERAPIST_SUMMARY,
)

logger = logging.getLogger(__name__)


def to_dict(obj) -> Row:
    return {attr.key: getattr(obj, attr.key) for attr in sa_inspect(obj).mapper.column_attrs}


def _summary(obj, columns) -> Optional[Row]:
    if obj is None:
        return None
    return {c: getattr(obj, c) for c in columns}


def _columns(model, values: Row) -> Row:
    names = {attr.key for attr in sa_inspect(model).column_attrs}
    return {k: v for k, v in values.items() if k in names}


def _profile_model(role: str):
    try:
        return PROFILE_MODELS[role]
    except KeyError:
        raise StoreError(f"Unknown profile table: {role}")


class LocalIdentityProvider(IdentityProvider):

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def sign_up(self, email: str, password: str) -> IdentityAccount:
        async with self._sessionmaker() as db:
            existing = await db.execute(select(Account.id).where(Account.email == email))
            if existing.scalar_one_or_none() is not None:
                raise IdentityError("User already registered")

            account = Account(email=email, password_hash=hash_password(password))
            db.add(account)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise IdentityError("User already registered")
            except SQLAlchemyError as e:
                await db.rollback()
                raise IdentityError(f"Account creation failed: {e}")
            return IdentityAccount(id=account.id, email=account.email)

    async def sign_in(self, email: str, password: str) -> IdentityAccount:
        async with self._sessionmaker() as db:
            res = await db.execute(select(Account).where(Account.email == email))
            account = res.scalar_one_or_none()
        if account is None or not verify_password(password, account.password_hash):
            raise AuthError("Invalid login credentials")
        return IdentityAccount(id=account.id, email=account.email)


class SqlStore(Store):

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    @asynccontextmanager
    async def _session(self):
        async with self._sessionmaker() as db:
            try:
                yield db
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("store error: %s", e)
                raise StoreError(str(getattr(e, "orig", None) or e))

    async def _insert(self, model, values: Row) -> Row:
        async with self._session() as db:
            obj = model(**_columns(model, values))
            db.add(obj)
            await db.commit()
            await db.refresh(obj)
            return to_dict(obj)

    async def _get(self, model, ident) -> Optional[Row]:
        async with self._session() as db:
            obj = await db.get(model, ident)
            return to_dict(obj) if obj is not None else None

    # -- profiles -----------------------------------------------------------

    async def find_directory_entries(self, login: str) -> List[Row]:
        d = user_directory()
        stmt = select(d).where(or_(d.c.username == login, func.lower(d.c.email) == login.lower()))
        async with self._session() as db:
            res = await db.execute(stmt)
            return [dict(r) for r in res.mappings().all()]

    async def get_directory_entry_by_account(self, account_id: str) -> Optional[Row]:
        d = user_directory()
        async with self._session() as db:
            res = await db.execute(select(d).where(d.c.account_id == account_id))
            row = res.mappings().first()
            return dict(row) if row else None

    async def username_exists(self, username: str, exclude_user_id: Optional[str] = None) -> bool:
        d = user_directory()
        stmt = select(d.c.user_id).where(d.c.username == username)
        if exclude_user_id:
            stmt = stmt.where(d.c.user_id != exclude_user_id)
        async with self._session() as db:
            res = await db.execute(stmt.limit(1))
            return res.first() is not None

    async def insert_profile(self, role: str, values: Row) -> Row:
        return await self._insert(_profile_model(role), values)

    async def update_profile(self, role: str, user_id: str, values: Row) -> Optional[Row]:
        model = _profile_model(role)
        async with self._session() as db:
            obj = await db.get(model, user_id)
            if obj is None:
                return None
            for key, value in _columns(model, values).items():
                setattr(obj, key, value)
            await db.commit()
            await db.refresh(obj)
            return to_dict(obj)

    async def get_profile(self, role: str, user_id: str) -> Optional[Row]:
        return await self._get(_profile_model(role), user_id)

    async def list_profiles(self, role: str, user_ids: Sequence[str]) -> List[Row]:
        if not user_ids:
            return []
        model = _profile_model(role)
        stmt = select(model).where(model.user_id.in_(list(user_ids))).order_by(model.created_at.desc())
        async with self._session() as db:
            res = await db.execute(stmt)
            return [to_dict(p) for p in res.scalars().all()]

    async def find_patient(self, login: str) -> Optional[Row]:
        stmt = (
            select(Patient)
            .where(or_(Patient.username == login, func.lower(Patient.email) == login.lower()))
            .order_by(Patient.created_at.asc())
        )
        async with self._session() as db:
            res = await db.execute(stmt)
            patient = res.scalars().first()
            return to_dict(patient) if patient else None

    async def find_unlinked_patient(self, email: str) -> Optional[Row]:
        stmt = (
            select(Patient)
            .where(func.lower(Patient.email) == email.lower(), Patient.account_id.is_(None))
            .order_by(Patient.created_at.asc())
        )
        async with self._session() as db:
            res = await db.execute(stmt)
            patient = res.scalars().first()
            return to_dict(patient) if patient else None

    # -- sessions -----------------------------------------------------------

    async def list_sessions(
        self,
        *,
        therapist_id: Optional[str] = None,
        patient_id: Optional[str] = None,
        date_from: Optional[date] = None,
        ascending: bool = False,
        limit: Optional[int] = None,
        embed: Optional[str] = None,
    ) -> List[Row]:
        embedded = {"patient": (PROFILE_MODELS["patient"], TherapySession.patient_id, PATIENT_SUMMARY),
                    "therapist": (PROFILE_MODELS["therapist"], TherapySession.therapist_id, THERAPIST_SUMMARY)}
        if embed is not None and embed not in embedded:
            raise StoreError(f"Cannot embed {embed} in session")

        if embed:
            other, fk, columns = embedded[embed]
            stmt = select(TherapySession, other).outerjoin(other, other.user_id == fk)
        else:
            stmt = select(TherapySession)

        if therapist_id is not None:
            stmt = stmt.where(TherapySession.therapist_id == therapist_id)
        if patient_id is not None:
            stmt = stmt.where(TherapySession.patient_id == patient_id)
        if date_from is not None:
            stmt = stmt.where(TherapySession.session_date >= date_from)

        if ascending:
            stmt = stmt.order_by(TherapySession.session_date.asc(), TherapySession.session_time.asc())
        else:
            stmt = stmt.order_by(TherapySession.session_date.desc(), TherapySession.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._session() as db:
            res = await db.execute(stmt)
            if not embed:
                return [to_dict(s) for s in res.scalars().all()]
            rows = []
            for session, profile in res.all():
                row = to_dict(session)
                row[embed] = _summary(profile, columns)
                rows.append(row)
            return rows

    async def get_session(self, session_id: str) -> Optional[Row]:
        return await self._get(TherapySession, session_id)

    async def insert_session(self, values: Row) -> Row:
        return await self._insert(TherapySession, values)

    # -- goals --------------------------------------------------------------

    async def list_goals(
        self,
        session_ids: Sequence[str],
        statuses: Optional[Iterable[str]] = None,
        order_by: str = "created_at",
        ascending: bool = False,
    ) -> List[Row]:
        if not session_ids:
            return []
        column = getattr(Goal, order_by, None)
        if column is None:
            raise StoreError(f"Unknown goal column: {order_by}")
        stmt = select(Goal).where(Goal.session_id.in_(list(session_ids)))
        if statuses is not None:
            stmt = stmt.where(Goal.status.in_(list(statuses)))
        stmt = stmt.order_by(column.asc() if ascending else column.desc())
        async with self._session() as db:
            res = await db.execute(stmt)
            return [to_dict(g) for g in res.scalars().all()]

    async def get_goal(self, goal_id: str) -> Optional[Row]:
        return await self._get(Goal, goal_id)

    async def insert_goal(self, values: Row) -> Row:
        return await self._insert(Goal, values)

    # -- exercises ----------------------------------------------------------

    async def list_exercises(self, created_by: str) -> List[Row]:
        stmt = select(Exercise).where(Exercise.created_by == created_by).order_by(Exercise.title.asc())
        async with self._session() as db:
            res = await db.execute(stmt)
            return [to_dict(e) for e in res.scalars().all()]

    async def get_exercise(self, exercise_id: str) -> Optional[Row]:
        return await self._get(Exercise, exercise_id)

    async def insert_exercise(self, values: Row) -> Row:
        return await self._insert(Exercise, values)

    async def list_goal_exercises(self, goal_ids: Sequence[str]) -> List[Row]:
        if not goal_ids:
            return []
        stmt = (
            select(GoalExerciseSet, Exercise, Goal)
            .outerjoin(Exercise, Exercise.exercise_id == GoalExerciseSet.exercise_id)
            .outerjoin(Goal, Goal.goal_id == GoalExerciseSet.goal_id)
            .where(GoalExerciseSet.goal_id.in_(list(goal_ids)))
        )
        async with self._session() as db:
            res = await db.execute(stmt)
            rows = []
            for link, exercise, goal in res.all():
                row = to_dict(link)
                row["exercise"] = to_dict(exercise) if exercise is not None else None
                row["goal"] = to_dict(goal) if goal is not None else None
                rows.append(row)
            return rows

    async def insert_goal_exercise(self, values: Row) -> Row:
        return await self._insert(GoalExerciseSet, values)

    async def list_session_exercises(self, session_ids: Sequence[str]) -> List[Row]:
        if not session_ids:
            return []
        stmt = (
            select(SessionExercise, Exercise)
            .outerjoin(Exercise, Exercise.exercise_id == SessionExercise.exercise_id)
            .where(SessionExercise.session_id.in_(list(session_ids)))
            .order_by(SessionExercise.created_at.desc())
        )
        async with self._session() as db:
            res = await db.execute(stmt)
            rows = []
            for link, exercise in res.all():
                row = to_dict(link)
                row["exercise"] = to_dict(exercise) if exercise is not None else None
                rows.append(row)
            return rows

    async def insert_session_exercise(self, values: Row) -> Row:
        return await self._insert(SessionExercise, values)

    async def update_session_exercise(self, session_id: str, exercise_id: str, values: Row) -> Optional[Row]:
        async with self._session() as db:
            link = await db.get(SessionExercise, (session_id, exercise_id))
            if link is None:
                return None
            for key, value in _columns(SessionExercise, values).items():
                setattr(link, key, value)
            await db.commit()
            await db.refresh(link)
            return to_dict(link)

    async def ping(self):
        async with self._session() as db:
            res = await db.execute(text("SELECT 1"))
            return res.scalar_one()
