from fastapi import APIRouter, Depends, Query

from ownurvoice.schemas import ExerciseNotes
from ownurvoice.services import dashboard_service, therapy_service
from ownurvoice.services.auth_service import UserContext, require_patient
from ownurvoice.stores import get_store
from ownurvoice.stores.base import Store

router = APIRouter(prefix="/api/patient", tags=["patient"])


@router.get("/dashboard")
async def get_dashboard(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await dashboard_service.patient_dashboard(store, current_user.user_id)
    return {"success": True, "data": data}


@router.get("/profile")
async def get_profile(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await dashboard_service.get_patient_profile(store, current_user.user_id)
    return {"success": True, "data": data}


@router.get("/therapists")
async def get_therapists(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await dashboard_service.get_patient_therapists(store, current_user.user_id)
    return {"success": True, "data": data}


@router.get("/sessions/upcoming")
async def get_upcoming_sessions(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await dashboard_service.get_upcoming_sessions(store, current_user.user_id)
    return {"success": True, "data": data}


@router.get("/sessions/recent")
async def get_recent_sessions(
    limit: int = Query(5, ge=1, le=100),
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await dashboard_service.get_recent_sessions(store, current_user.user_id, limit)
    return {"success": True, "data": data}


@router.get("/goals")
async def get_active_goals(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await dashboard_service.get_active_goals(store, current_user.user_id)
    return {"success": True, "data": data}


@router.get("/exercises")
async def get_assigned_exercises(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await dashboard_service.get_assigned_exercises(store, current_user.user_id)
    return {"success": True, "data": data}


@router.get("/session-exercises")
async def get_session_exercises(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await dashboard_service.get_session_exercises(store, current_user.user_id)
    return {"success": True, "data": data}


@router.get("/stats")
async def get_stats(
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await dashboard_service.get_patient_stats(store, current_user.user_id)
    return {"success": True, "data": data}


@router.post("/sessions/{session_id}/exercises/{exercise_id}/complete")
async def complete_exercise(
    session_id: str,
    exercise_id: str,
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await therapy_service.mark_exercise_complete(store, current_user.user_id, session_id, exercise_id)
    return {"success": True, "message": "Exercise marked complete", "data": data}


@router.put("/sessions/{session_id}/exercises/{exercise_id}/notes")
async def update_exercise_notes(
    session_id: str,
    exercise_id: str,
    payload: ExerciseNotes,
    store: Store = Depends(get_store),
    current_user: UserContext = Depends(require_patient),
):
    data = await therapy_service.add_exercise_notes(
        store, current_user.user_id, session_id, exercise_id, payload.notes
    )
    return {"success": True, "message": "Notes saved", "data": data}
