"""
Dashboard reads for therapists and patients.

Most reads are fan-outs: sessions -> ids -> child rows. The dashboard
aggregates issue their branches concurrently; a branch that fails with an
OwnUrVoiceError is logged and reported under ``errors`` while the other
branches still return. Anything else propagates.
"""
import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Tuple

from ownurvoice.exceptions import NotFoundError, OwnUrVoiceError, PermissionDeniedError
from ownurvoice.schemas import PatientDashboard, PatientDetail, PatientStats, TherapistDashboard
from ownurvoice.stores.base import Row, Store

logger = logging.getLogger(__name__)

ACTIVE_GOAL_STATUSES = ("active", "in progress")


def distinct_ids(values: Iterable[Optional[str]]) -> List[str]:
    """Non-null ids, first occurrence order kept."""
    seen = []
    for value in values:
        if value is not None and value not in seen:
            seen.append(value)
    return seen


def completion_rate(completed: int, total: int) -> int:
    # half rounds up
    return int(completed * 100 / total + 0.5) if total else 0


async def gather_branches(branches: Dict[str, Awaitable]) -> Tuple[Dict[str, Any], Dict[str, str]]:
    names = list(branches)
    results = await asyncio.gather(*branches.values(), return_exceptions=True)

    data, errors = {}, {}
    for name, result in zip(names, results):
        if isinstance(result, OwnUrVoiceError):
            logger.error("Dashboard branch %s failed: %s", name, result.message)
            errors[name] = result.message
        elif isinstance(result, BaseException):
            raise result
        else:
            data[name] = result
    return data, errors


# --- therapist ---

async def get_therapist_sessions(store: Store, therapist_id: str, limit: int = 10) -> List[Row]:
    return await store.list_sessions(therapist_id=therapist_id, limit=limit, embed="patient")


async def get_therapist_patients(store: Store, therapist_id: str) -> List[Row]:
    # 1. sessions -> patient ids
    sessions = await store.list_sessions(therapist_id=therapist_id)
    patient_ids = distinct_ids(s.get("patient_id") for s in sessions)
    if not patient_ids:
        return []
    # 2. patient rows
    return await store.list_profiles("patient", patient_ids)


async def get_therapist_exercises(store: Store, therapist_id: str) -> List[Row]:
    return await store.list_exercises(therapist_id)


async def therapist_dashboard(store: Store, therapist_id: str, session_limit: int = 10) -> Dict[str, Any]:
    data, errors = await gather_branches({
        "sessions": get_therapist_sessions(store, therapist_id, session_limit),
        "patients": get_therapist_patients(store, therapist_id),
        "exercises": get_therapist_exercises(store, therapist_id),
    })
    return TherapistDashboard(**data, errors=errors).model_dump()


async def get_patient_detail(store: Store, therapist_id: str, patient_id: str) -> Dict[str, Any]:
    """A therapist's view of one patient; only for patients they have a session with."""
    sessions = await store.list_sessions(therapist_id=therapist_id, patient_id=patient_id)
    if not sessions:
        raise PermissionDeniedError("This patient is not assigned to you")

    session_ids = [s["session_id"] for s in sessions]
    profile, goals, session_exercises, stats = await asyncio.gather(
        get_patient_profile(store, patient_id),
        store.list_goals(session_ids),
        store.list_session_exercises(session_ids),
        get_patient_stats(store, patient_id),
    )
    return PatientDetail(
        profile=profile,
        sessions=sessions,
        goals=goals,
        session_exercises=session_exercises,
        stats=stats,
    ).model_dump()


# --- patient ---

async def get_patient_profile(store: Store, patient_id: str) -> Row:
    profile = await store.get_profile("patient", patient_id)
    if profile is None:
        raise NotFoundError("Patient profile not found")
    return profile


async def _patient_session_ids(store: Store, patient_id: str) -> List[str]:
    sessions = await store.list_sessions(patient_id=patient_id)
    return [s["session_id"] for s in sessions]


async def get_patient_therapists(store: Store, patient_id: str) -> List[Row]:
    sessions = await store.list_sessions(patient_id=patient_id)
    therapist_ids = distinct_ids(s.get("therapist_id") for s in sessions)
    if not therapist_ids:
        return []
    return await store.list_profiles("therapist", therapist_ids)


async def get_upcoming_sessions(store: Store, patient_id: str, today: Optional[date] = None) -> List[Row]:
    return await store.list_sessions(
        patient_id=patient_id,
        date_from=today or date.today(),
        ascending=True,
        embed="therapist",
    )


async def get_recent_sessions(store: Store, patient_id: str, limit: int = 5) -> List[Row]:
    return await store.list_sessions(patient_id=patient_id, limit=limit, embed="therapist")


async def get_active_goals(store: Store, patient_id: str) -> List[Row]:
    session_ids = await _patient_session_ids(store, patient_id)
    return await store.list_goals(
        session_ids, statuses=ACTIVE_GOAL_STATUSES, order_by="target_date", ascending=True
    )


async def get_assigned_exercises(store: Store, patient_id: str) -> List[Row]:
    # 1. sessions -> 2. goals -> 3. goal/exercise links
    session_ids = await _patient_session_ids(store, patient_id)
    goals = await store.list_goals(session_ids)
    return await store.list_goal_exercises([g["goal_id"] for g in goals])


async def get_session_exercises(store: Store, patient_id: str) -> List[Row]:
    session_ids = await _patient_session_ids(store, patient_id)
    return await store.list_session_exercises(session_ids)


async def get_patient_stats(store: Store, patient_id: str) -> Dict[str, int]:
    session_ids = await _patient_session_ids(store, patient_id)
    goals, exercises = await asyncio.gather(
        store.list_goals(session_ids),
        store.list_session_exercises(session_ids),
    )
    completed_goals = sum(1 for g in goals if g.get("status") == "completed")
    completed_exercises = sum(1 for e in exercises if e.get("completed"))
    return PatientStats(
        total_sessions=len(session_ids),
        total_goals=len(goals),
        completed_goals=completed_goals,
        goal_completion_rate=completion_rate(completed_goals, len(goals)),
        total_exercises=len(exercises),
        completed_exercises=completed_exercises,
        exercise_completion_rate=completion_rate(completed_exercises, len(exercises)),
    ).model_dump()


async def patient_dashboard(store: Store, patient_id: str, today: Optional[date] = None) -> Dict[str, Any]:
    # profile is required; NotFoundError aborts the whole read
    profile = await get_patient_profile(store, patient_id)

    data, errors = await gather_branches({
        "therapists": get_patient_therapists(store, patient_id),
        "upcoming_sessions": get_upcoming_sessions(store, patient_id, today),
        "active_goals": get_active_goals(store, patient_id),
        "assigned_exercises": get_assigned_exercises(store, patient_id),
        "session_exercises": get_session_exercises(store, patient_id),
        "stats": get_patient_stats(store, patient_id),
    })
    return PatientDashboard(profile=profile, **data, errors=errors).model_dump()
