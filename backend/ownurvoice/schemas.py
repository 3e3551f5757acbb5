from __future__ import annotations
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import date, datetime, time


class CamelModel(BaseModel):
    """Accepts both ``firstName`` and ``first_name``; dumps camelCase with by_alias."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- auth ---
class RegisterRequest(CamelModel):
    """
    /api/auth/register request. Every field is optional here; the
    registration flow reports what is missing for the chosen role.
    """
    role: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    confirm_password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None

    # therapist
    clinic_name: Optional[str] = None
    years_of_experience: Optional[int] = None
    qualification: Optional[str] = None
    # patient
    therapy_start_date: Optional[date] = None
    preferred_contact_method: Optional[str] = None
    # parent / carer
    relationship_to_patient: Optional[str] = None


class LoginRequest(CamelModel):
    # legacy clients post {"username": ...}, newer ones {"usernameOrEmail": ...}
    username: Optional[str] = None
    username_or_email: Optional[str] = None
    password: Optional[str] = None

    @property
    def login(self) -> str:
        return (self.username_or_email or self.username or "").strip()


class UserPublic(CamelModel):
    """
    User object handed to the client after register / login / verify.
    ``id`` is the identity-provider account id, ``user_id`` the profile row.
    """
    id: Optional[str] = None
    user_id: str
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    role: str

    clinic_name: Optional[str] = None
    years_of_experience: Optional[int] = None
    qualification: Optional[str] = None
    therapy_start_date: Optional[date] = None
    preferred_contact_method: Optional[str] = None
    relationship_to_patient: Optional[str] = None
    created_at: Optional[datetime] = None


# --- therapist writes ---
class PatientCreate(CamelModel):
    """POST /api/therapist/patients. Checked again by add_patient."""
    username: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    preferred_contact_method: Optional[str] = None
    patient_profile: Optional[str] = None


class LinkPatientRequest(CamelModel):
    username_or_email: str = Field(..., min_length=1)


class SessionCreate(BaseModel):
    patient_id: str
    session_date: date
    session_time: Optional[time] = None
    session_type: Optional[str] = None
    status: str = "scheduled"
    location: Optional[str] = None
    notes: Optional[str] = None


class GoalCreate(BaseModel):
    session_id: str
    goal_description: str = Field(..., min_length=1)
    start_date: Optional[date] = None
    target_date: Optional[date] = None
    status: str = "active"
    priority: Optional[str] = None


class ExerciseCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    difficulty_level: Optional[str] = None
    recommended_frequency: Optional[str] = None


class AssignExercise(BaseModel):
    exercise_id: str


class ExerciseNotes(BaseModel):
    notes: str


# --- reads ---
class PatientStats(BaseModel):
    total_sessions: int = 0
    total_goals: int = 0
    completed_goals: int = 0
    goal_completion_rate: int = 0
    total_exercises: int = 0
    completed_exercises: int = 0
    exercise_completion_rate: int = 0


class TherapistDashboard(BaseModel):
    sessions: List[Dict[str, Any]] = []
    patients: List[Dict[str, Any]] = []
    exercises: List[Dict[str, Any]] = []
    # branch name -> error message for branches that failed
    errors: Dict[str, str] = {}


class PatientDashboard(BaseModel):
    profile: Dict[str, Any]
    therapists: List[Dict[str, Any]] = []
    upcoming_sessions: List[Dict[str, Any]] = []
    active_goals: List[Dict[str, Any]] = []
    assigned_exercises: List[Dict[str, Any]] = []
    session_exercises: List[Dict[str, Any]] = []
    stats: PatientStats = PatientStats()
    errors: Dict[str, str] = {}


class PatientDetail(BaseModel):
    profile: Dict[str, Any]
    sessions: List[Dict[str, Any]] = []
    goals: List[Dict[str, Any]] = []
    session_exercises: List[Dict[str, Any]] = []
    stats: PatientStats = PatientStats()
