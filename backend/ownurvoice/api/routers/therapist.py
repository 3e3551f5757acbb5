from fastapi import APIRouter, Depends, Query, status

from ownurvoice.schemas import (
    AssignExercise, ExerciseCreate, GoalCreate, LinkPatientRequest, PatientCreate, SessionCreate,
)
from ownurvoice.services import dashboard_service, therapy_service
from ownurvoice.services.auth_service import UserContext, require_therapist
from ownurvoice.stores import get_store
from ownurvoice.stores.base import Store

router = APIRouter(prefix="/api/therapist", tags=["therapist"])


@router.get("/dashboard")
async def get_dashboard(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await dashboard_service.therapist_dashboard(store, current_user.user_id)
    return {"success": True, "data": data}


# --- sessions ---
@router.get("/sessions")
async def list_sessions(
    limit: int = Query(10, ge=1, le=100),
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await dashboard_service.get_therapist_sessions(store, current_user.user_id, limit)
    return {"success": True, "data": data}


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreate,
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await therapy_service.create_session(store, current_user.user_id, payload)
    return {"success": True, "message": "Session created", "data": data}


@router.post("/sessions/{session_id}/exercises", status_code=status.HTTP_201_CREATED)
async def assign_exercise_to_session(
    session_id: str,
    payload: AssignExercise,
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await therapy_service.assign_exercise_to_session(store, current_user.user_id, session_id, payload)
    return {"success": True, "message": "Exercise assigned to session", "data": data}


# --- patients ---
@router.get("/patients")
async def list_patients(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await dashboard_service.get_therapist_patients(store, current_user.user_id)
    return {"success": True, "data": data}


@router.post("/patients", status_code=status.HTTP_201_CREATED)
async def add_patient(
    payload: PatientCreate,
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await therapy_service.add_patient(store, current_user.user_id, payload)
    return {"success": True, "message": "Patient added", "data": data}


@router.post("/patients/link", status_code=status.HTTP_201_CREATED)
async def link_patient(
    payload: LinkPatientRequest,
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await therapy_service.link_existing_patient(store, current_user.user_id, payload.username_or_email)
    return {"success": True, "message": "Patient linked", "data": data}


@router.get("/patients/{patient_id}")
async def get_patient_detail(
    patient_id: str,
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await dashboard_service.get_patient_detail(store, current_user.user_id, patient_id)
    return {"success": True, "data": data}


# --- goals ---
@router.post("/goals", status_code=status.HTTP_201_CREATED)
async def create_goal(
    payload: GoalCreate,
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await therapy_service.create_goal(store, current_user.user_id, payload)
    return {"success": True, "message": "Goal created", "data": data}


@router.post("/goals/{goal_id}/exercises", status_code=status.HTTP_201_CREATED)
async def assign_exercise_to_goal(
    goal_id: str,
    payload: AssignExercise,
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await therapy_service.assign_exercise_to_goal(store, current_user.user_id, goal_id, payload)
    return {"success": True, "message": "Exercise assigned to goal", "data": data}


# --- exercises ---
@router.get("/exercises")
async def list_exercises(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await dashboard_service.get_therapist_exercises(store, current_user.user_id)
    return {"success": True, "data": data}


@router.post("/exercises", status_code=status.HTTP_201_CREATED)
async def create_exercise(
    payload: ExerciseCreate,
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_therapist),
):
    data = await therapy_service.create_exercise(store, current_user.user_id, payload)
    return {"success": True, "message": "Exercise created", "data": data}
