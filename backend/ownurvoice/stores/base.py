"""
Adapter interfaces for the two external collaborators: the identity provider
(accounts and credentials) and the relational store (profiles, sessions,
goals, exercises and their join rows).

Rows travel as plain dicts keyed by column name, the same shape the hosted
data API returns, so the flows in ``ownurvoice.services`` do not care which
backend is configured.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

Row = Dict[str, Any]

# columns embedded when a session is read together with its patient / therapist
PATIENT_SUMMARY = ("user_id", "first_name", "last_name", "email")
THERAPIST_SUMMARY = ("user_id", "first_name", "last_name", "qualification")


@dataclass
class IdentityAccount:
    id: str
    email: str


class IdentityProvider(ABC):

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> IdentityAccount:
        """Create an account. Raises IdentityError on duplicate email or rejection."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> IdentityAccount:
        """Check credentials. Raises AuthError on mismatch, IdentityError otherwise."""


class Store(ABC):

    # -- profiles -----------------------------------------------------------

    @abstractmethod
    async def find_directory_entries(self, login: str) -> List[Row]:
        """``user_directory`` rows whose username or email equals ``login``."""

    @abstractmethod
    async def get_directory_entry_by_account(self, account_id: str) -> Optional[Row]: ...

    @abstractmethod
    async def username_exists(self, username: str, exclude_user_id: Optional[str] = None) -> bool: ...

    @abstractmethod
    async def insert_profile(self, role: str, values: Row) -> Row: ...

    @abstractmethod
    async def update_profile(self, role: str, user_id: str, values: Row) -> Optional[Row]: ...

    @abstractmethod
    async def get_profile(self, role: str, user_id: str) -> Optional[Row]: ...

    @abstractmethod
    async def list_profiles(self, role: str, user_ids: Sequence[str]) -> List[Row]:
        """Rows of ``role`` whose ``user_id`` is in ``user_ids``, newest first."""

    @abstractmethod
    async def find_patient(self, login: str) -> Optional[Row]:
        """Patient row by username or email."""

    @abstractmethod
    async def find_unlinked_patient(self, email: str) -> Optional[Row]:
        """Patient row with this email and no identity-provider account yet."""

    # -- sessions -----------------------------------------------------------

    @abstractmethod
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
        """
        Sessions filtered by therapist and/or patient, ordered by
        ``session_date``. ``embed`` is ``"patient"`` or ``"therapist"`` and adds
        a nested summary row under that key.
        """

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Row]: ...

    @abstractmethod
    async def insert_session(self, values: Row) -> Row: ...

    # -- goals --------------------------------------------------------------

    @abstractmethod
    async def list_goals(
        self,
        session_ids: Sequence[str],
        statuses: Optional[Iterable[str]] = None,
        order_by: str = "created_at",
        ascending: bool = False,
    ) -> List[Row]: ...

    @abstractmethod
    async def get_goal(self, goal_id: str) -> Optional[Row]: ...

    @abstractmethod
    async def insert_goal(self, values: Row) -> Row: ...

    # -- exercises ----------------------------------------------------------

    @abstractmethod
    async def list_exercises(self, created_by: str) -> List[Row]:
        """Exercises authored by a therapist, ordered by title."""

    @abstractmethod
    async def get_exercise(self, exercise_id: str) -> Optional[Row]: ...

    @abstractmethod
    async def insert_exercise(self, values: Row) -> Row: ...

    @abstractmethod
    async def list_goal_exercises(self, goal_ids: Sequence[str]) -> List[Row]:
        """``goal_exercise_set`` rows with nested ``exercise`` and ``goal``."""

    @abstractmethod
    async def insert_goal_exercise(self, values: Row) -> Row: ...

    @abstractmethod
    async def list_session_exercises(self, session_ids: Sequence[str]) -> List[Row]:
        """``session_exercise`` rows with nested ``exercise``, newest first."""

    @abstractmethod
    async def insert_session_exercise(self, values: Row) -> Row: ...

    @abstractmethod
    async def update_session_exercise(self, session_id: str, exercise_id: str, values: Row) -> Optional[Row]:
        """Returns the updated row, or None when no row matched."""

    # -- misc ---------------------------------------------------------------

    @abstractmethod
    async def ping(self) -> Any: ...

    async def close(self) -> None:
        return None
