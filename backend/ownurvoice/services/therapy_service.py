"""
Therapist and patient write operations: patients, sessions, goals,
exercises and the exercise links that hang off sessions and goals.
"""
import logging
import re
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Optional

from ownurvoice.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from ownurvoice.models import new_id
from ownurvoice.schemas import (
    AssignExercise, ExerciseCreate, GoalCreate, PatientCreate, SessionCreate,
)
from ownurvoice.services.auth_service import is_valid_email
from ownurvoice.stores.base import Row, Store

logger = logging.getLogger(__name__)

UK_PHONE_RE = re.compile(r"^(\+44|0)[0-9]{10}$")

INITIAL_SESSION = {
    "session_time": time(9, 0),
    "session_type": "Initial Assessment",
    "status": "scheduled",
    "location": "To be determined",
}

PATIENT_REQUIRED = {
    "username": "username",
    "email": "email",
    "first_name": "first name",
    "last_name": "last name",
    "phone_number": "phone number",
    "date_of_birth": "date of birth",
}


def is_valid_uk_phone(phone: str) -> bool:
    return bool(UK_PHONE_RE.match((phone or "").replace(" ", "")))


def age_on(born: date, today: date) -> int:
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _own_session(store: Store, therapist_id: str, session_id: str) -> Row:
    session = await store.get_session(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    if session.get("therapist_id") != therapist_id:
        raise PermissionDeniedError("This session does not belong to you")
    return session


async def _initial_session(store: Store, therapist_id: str, patient_id: str, today: date) -> Row:
    return await store.insert_session({
        "session_id": new_id(),
        "patient_id": patient_id,
        "therapist_id": therapist_id,
        "session_date": today,
        **INITIAL_SESSION,
    })


# --- patients ---

async def add_patient(store: Store, therapist_id: str, payload: PatientCreate, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Create a patient row without an account, plus an initial session that
    links it to the therapist. The patient claims the row by registering
    with the same email later.
    """
    today = today or date.today()
    data = {k: v.strip() if isinstance(v, str) else v for k, v in payload.model_dump().items()}

    # 1. validate
    missing = [label for field, label in PATIENT_REQUIRED.items() if not data.get(field)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    data["email"] = data["email"].lower()
    if not is_valid_email(data["email"]):
        raise ValidationError("Invalid email format")
    if not is_valid_uk_phone(data["phone_number"]):
        raise ValidationError("Please enter a valid UK phone number")
    age = age_on(data["date_of_birth"], today)
    if age < 1 or age > 120:
        raise ValidationError("Please enter a valid date of birth")
    if await store.username_exists(data["username"]):
        raise ValidationError("Username already exists")

    # 2. patient row
    patient = await store.insert_profile("patient", {
        "user_id": new_id(),
        "account_id": None,
        "username": data["username"],
        "email": data["email"],
        "first_name": data["first_name"],
        "last_name": data["last_name"],
        "phone_number": data["phone_number"],
        "date_of_birth": data["date_of_birth"],
        "patient_profile": data.get("patient_profile") or "",
        "preferred_contact_method": data.get("preferred_contact_method") or "email",
        "therapy_start_date": today,
        "user_role": "patient",
    })

    # 3. initial session
    session = await _initial_session(store, therapist_id, patient["user_id"], today)
    logger.info("Therapist %s added patient %s", therapist_id, patient["user_id"])
    return {"patient": patient, "session": session}


async def link_existing_patient(store: Store, therapist_id: str, username_or_email: str, today: Optional[date] = None) -> Dict[str, Any]:
    login = (username_or_email or "").strip()
    if not login:
        raise ValidationError("Username or email is required")
    patient = await store.find_patient(login)
    if patient is None:
        raise NotFoundError("No patient found with that username or email")

    session = await _initial_session(store, therapist_id, patient["user_id"], today or date.today())
    logger.info("Therapist %s linked existing patient %s", therapist_id, patient["user_id"])
    return {"patient": patient, "session": session}


# --- sessions / goals ---

async def create_session(store: Store, therapist_id: str, payload: SessionCreate) -> Row:
    if await store.get_profile("patient", payload.patient_id) is None:
        raise NotFoundError("Patient not found")
    return await store.insert_session({
        "session_id": new_id(),
        "therapist_id": therapist_id,
        **payload.model_dump(),
    })


async def create_goal(store: Store, therapist_id: str, payload: GoalCreate) -> Row:
    await _own_session(store, therapist_id, payload.session_id)
    values = payload.model_dump()
    values["goal_description"] = values["goal_description"].strip()
    if not values["goal_description"]:
        raise ValidationError("Goal description is required")
    if values["start_date"] and values["target_date"] and values["target_date"] < values["start_date"]:
        raise ValidationError("Target date cannot be before start date")
    return await store.insert_goal({"goal_id": new_id(), **values})


# --- exercises ---

async def create_exercise(store: Store, therapist_id: str, payload: ExerciseCreate) -> Row:
    values = payload.model_dump()
    values["title"] = values["title"].strip()
    if not values["title"]:
        raise ValidationError("Exercise title is required")
    return await store.insert_exercise({"exercise_id": new_id(), "created_by": therapist_id, **values})


async def _exercise(store: Store, exercise_id: str) -> Row:
    exercise = await store.get_exercise(exercise_id)
    if exercise is None:
        raise NotFoundError("Exercise not found")
    return exercise


async def assign_exercise_to_goal(store: Store, therapist_id: str, goal_id: str, payload: AssignExercise) -> Row:
    goal = await store.get_goal(goal_id)
    if goal is None:
        raise NotFoundError("Goal not found")
    await _own_session(store, therapist_id, goal["session_id"])
    await _exercise(store, payload.exercise_id)
    return await store.insert_goal_exercise({"goal_id": goal_id, "exercise_id": payload.exercise_id})


async def assign_exercise_to_session(store: Store, therapist_id: str, session_id: str, payload: AssignExercise) -> Row:
    await _own_session(store, therapist_id, session_id)
    await _exercise(store, payload.exercise_id)
    return await store.insert_session_exercise({
        "session_id": session_id,
        "exercise_id": payload.exercise_id,
        "completed": False,
    })


async def _patient_session_exercise(store: Store, patient_id: str, session_id: str, exercise_id: str, values: Row) -> Row:
    session = await store.get_session(session_id)
    if session is None:
        raise NotFoundError("Session exercise not found")
    if session.get("patient_id") != patient_id:
        raise PermissionDeniedError("This session does not belong to you")

    row = await store.update_session_exercise(session_id, exercise_id, values)
    if row is None:
        raise NotFoundError("Session exercise not found")
    return row


async def mark_exercise_complete(store: Store, patient_id: str, session_id: str, exercise_id: str) -> Row:
    """Idempotent; a repeat call refreshes ``completion_date``."""
    row = await _patient_session_exercise(
        store, patient_id, session_id, exercise_id,
        {"completed": True, "completion_date": _utcnow()},
    )
    logger.info("Patient %s completed exercise %s in session %s", patient_id, exercise_id, session_id)
    return row


async def add_exercise_notes(store: Store, patient_id: str, session_id: str, exercise_id: str, notes: str) -> Row:
    return await _patient_session_exercise(store, patient_id, session_id, exercise_id, {"notes": notes})
