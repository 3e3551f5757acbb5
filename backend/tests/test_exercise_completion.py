from datetime import date

import pytest

from conftest import patient_form, therapist_form
from ownurvoice.exceptions import NotFoundError, PermissionDeniedError
from ownurvoice.schemas import AssignExercise, ExerciseCreate, SessionCreate
from ownurvoice.services import dashboard_service, therapy_service


@pytest.fixture
async def assigned(store, register):
    therapist = (await register(therapist_form()))["user"]["userId"]
    patient = (await register(patient_form()))["user"]["userId"]
    session = await therapy_service.create_session(store, therapist, SessionCreate(
        patient_id=patient, session_date=date(2025, 2, 1),
    ))
    exercise = await therapy_service.create_exercise(store, therapist, ExerciseCreate(title="Humming"))
    await therapy_service.assign_exercise_to_session(
        store, therapist, session["session_id"], AssignExercise(exercise_id=exercise["exercise_id"])
    )
    return patient, session["session_id"], exercise["exercise_id"]


async def test_mark_complete_is_idempotent(store, assigned):
    patient, session_id, exercise_id = assigned

    first = await therapy_service.mark_exercise_complete(store, patient, session_id, exercise_id)
    second = await therapy_service.mark_exercise_complete(store, patient, session_id, exercise_id)

    assert first["completed"] is True
    assert second["completed"] is True
    assert second["completion_date"] >= first["completion_date"]
    stats = await dashboard_service.get_patient_stats(store, patient)
    assert stats["completed_exercises"] == 1
    assert stats["exercise_completion_rate"] == 100


async def test_mark_complete_without_row_is_not_found(store, assigned):
    patient, session_id, _ = assigned

    with pytest.raises(NotFoundError):
        await therapy_service.mark_exercise_complete(store, patient, session_id, "no-such-exercise")
    with pytest.raises(NotFoundError):
        await therapy_service.mark_exercise_complete(store, patient, "no-such-session", "x")


async def test_other_patient_cannot_complete(store, register, assigned):
    _, session_id, exercise_id = assigned
    other = await register(patient_form(username="maya", email="maya@example.com"))

    with pytest.raises(PermissionDeniedError):
        await therapy_service.mark_exercise_complete(store, other["user"]["userId"], session_id, exercise_id)


async def test_add_notes(store, assigned):
    patient, session_id, exercise_id = assigned

    row = await therapy_service.add_exercise_notes(store, patient, session_id, exercise_id, "Easier today")

    assert row["notes"] == "Easier today"
    assert row["completed"] is False
    exercises = await dashboard_service.get_session_exercises(store, patient)
    assert exercises[0]["notes"] == "Easier today"
    assert exercises[0]["exercise"]["title"] == "Humming"
