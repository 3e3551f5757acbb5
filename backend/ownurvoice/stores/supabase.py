"""
Hosted backend: Supabase Auth (GoTrue, ``/auth/v1``) as identity provider and
the Supabase data API (PostgREST, ``/rest/v1``) as store, both over one
shared ``httpx.AsyncClient``.

The hosted database is expected to carry the tables of ``ownurvoice.models``
plus a ``user_directory`` view (``user_id, account_id, username, email,
user_role`` unioned over the three profile tables).
"""
from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx
from fastapi.encoders import jsonable_encoder

from ownurvoice.config import SUPABASE_KEY, SUPABASE_TIMEOUT, SUPABASE_URL
from ownurvoice.exceptions import AuthError, IdentityError, StoreError
from ownurvoice.stores.base import (
    IdentityAccount, IdentityProvider, PATIENT_SUMMARY, Row, Store, THERAPIST_SUMMARY,
)

logger = logging.getLogger(__name__)

PROFILE_TABLES = ("therapist", "patient", "parent_carer")
RETURN_ROWS = {"Prefer": "return=representation"}


def make_client(
    url: str = SUPABASE_URL,
    key: str = SUPABASE_KEY,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    if not url or not key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set for the supabase backend")
    return httpx.AsyncClient(
        base_url=url.rstrip("/"),
        headers={
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        },
        timeout=httpx.Timeout(SUPABASE_TIMEOUT),
        transport=transport,
    )


def _quote(value: Any) -> str:
    """PostgREST value quoting for ``in.(...)`` / ``or=(...)`` lists."""
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


def in_list(values: Iterable[Any]) -> str:
    return "in.(" + ",".join(_quote(v) for v in values) + ")"


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return (
            body.get("msg")
            or body.get("message")
            or body.get("error_description")
            or body.get("error")
            or f"HTTP {resp.status_code}"
        )
    return str(body)


class SupabaseIdentityProvider(IdentityProvider):

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def _post(self, path: str, payload: Dict[str, Any], params: Optional[Dict[str, str]] = None):
        try:
            return await self._client.post(path, json=payload, params=params)
        except httpx.HTTPError as e:
            raise IdentityError(f"Failed to communicate with identity provider: {e}")

    async def sign_up(self, email: str, password: str) -> IdentityAccount:
        resp = await self._post("/auth/v1/signup", {"email": email, "password": password})
        if resp.status_code >= 400:
            raise IdentityError(_error_message(resp))

        data = resp.json()
        # with email confirmation on, GoTrue answers with the bare user
        user = data.get("user") or data
        if not user.get("id"):
            raise IdentityError("User creation failed")
        return IdentityAccount(id=user["id"], email=user.get("email", email))

    async def sign_in(self, email: str, password: str) -> IdentityAccount:
        resp = await self._post(
            "/auth/v1/token", {"email": email, "password": password}, params={"grant_type": "password"}
        )
        if resp.status_code in (400, 401, 422):
            raise AuthError(_error_message(resp))
        if resp.status_code >= 400:
            raise IdentityError(_error_message(resp))

        data = resp.json()
        user = data.get("user") or {}
        if not user.get("id"):
            raise IdentityError("Identity provider returned no user")
        return IdentityAccount(id=user["id"], email=user.get("email", email))


class SupabaseStore(Store):

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def _request(self, method: str, table: str, params=None, payload=None, headers=None) -> List[Row]:
        try:
            resp = await self._client.request(
                method,
                f"/rest/v1/{table}",
                params=params,
                json=jsonable_encoder(payload) if payload is not None else None,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error("data API %s %s failed: %s", method, table, e)
            raise StoreError(f"Failed to communicate with data store: {e}")
        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.error("data API %s %s -> %s: %s", method, table, resp.status_code, message)
            raise StoreError(message)
        if not resp.content:
            return []
        data = resp.json()
        return data if isinstance(data, list) else [data]

    async def _select(self, table: str, params: Dict[str, Any]) -> List[Row]:
        params = {"select": "*", **params}
        return await self._request("GET", table, params=params)

    async def _first(self, table: str, params: Dict[str, Any]) -> Optional[Row]:
        rows = await self._select(table, {**params, "limit": 1})
        return rows[0] if rows else None

    async def _insert(self, table: str, values: Row) -> Row:
        rows = await self._request("POST", table, payload=[values], headers=RETURN_ROWS)
        if not rows:
            raise StoreError(f"Insert into {table} returned no row")
        return rows[0]

    async def _update(self, table: str, filters: Dict[str, str], values: Row) -> Optional[Row]:
        rows = await self._request("PATCH", table, params=filters, payload=values, headers=RETURN_ROWS)
        return rows[0] if rows else None

    # -- profiles -----------------------------------------------------------

    async def find_directory_entries(self, login: str) -> List[Row]:
        return await self._select(
            "user_directory",
            {"or": f"(username.eq.{_quote(login)},email.eq.{_quote(login.lower())})"},
        )

    async def get_directory_entry_by_account(self, account_id: str) -> Optional[Row]:
        return await self._first("user_directory", {"account_id": f"eq.{account_id}"})

    async def username_exists(self, username: str, exclude_user_id: Optional[str] = None) -> bool:
        params = {"select": "user_id", "username": f"eq.{username}"}
        if exclude_user_id:
            params["user_id"] = f"neq.{exclude_user_id}"
        rows = await self._request("GET", "user_directory", params={**params, "limit": 1})
        return bool(rows)

    async def insert_profile(self, role: str, values: Row) -> Row:
        return await self._insert(self._table(role), values)

    async def update_profile(self, role: str, user_id: str, values: Row) -> Optional[Row]:
        return await self._update(self._table(role), {"user_id": f"eq.{user_id}"}, values)

    async def get_profile(self, role: str, user_id: str) -> Optional[Row]:
        return await self._first(self._table(role), {"user_id": f"eq.{user_id}"})

    async def list_profiles(self, role: str, user_ids: Sequence[str]) -> List[Row]:
        if not user_ids:
            return []
        return await self._select(
            self._table(role), {"user_id": in_list(user_ids), "order": "created_at.desc"}
        )

    async def find_patient(self, login: str) -> Optional[Row]:
        return await self._first(
            "patient",
            {"or": f"(username.eq.{_quote(login)},email.eq.{_quote(login.lower())})", "order": "created_at.asc"},
        )

    async def find_unlinked_patient(self, email: str) -> Optional[Row]:
        return await self._first(
            "patient",
            {"email": f"eq.{email.lower()}", "account_id": "is.null", "order": "created_at.asc"},
        )

    @staticmethod
    def _table(role: str) -> str:
        if role not in PROFILE_TABLES:
            raise StoreError(f"Unknown profile table: {role}")
        return role

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
        select = "*"
        if embed == "patient":
            select = f"*,patient:patient_id({','.join(PATIENT_SUMMARY)})"
        elif embed == "therapist":
            select = f"*,therapist:therapist_id({','.join(THERAPIST_SUMMARY)})"
        elif embed is not None:
            raise StoreError(f"Cannot embed {embed} in session")

        params: Dict[str, Any] = {"select": select}
        if therapist_id is not None:
            params["therapist_id"] = f"eq.{therapist_id}"
        if patient_id is not None:
            params["patient_id"] = f"eq.{patient_id}"
        if date_from is not None:
            params["session_date"] = f"gte.{date_from.isoformat()}"
        params["order"] = "session_date.asc,session_time.asc" if ascending else "session_date.desc,created_at.desc"
        if limit is not None:
            params["limit"] = limit
        return await self._request("GET", "session", params=params)

    async def get_session(self, session_id: str) -> Optional[Row]:
        return await self._first("session", {"session_id": f"eq.{session_id}"})

    async def insert_session(self, values: Row) -> Row:
        return await self._insert("session", values)

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
        params = {
            "session_id": in_list(session_ids),
            "order": f"{order_by}.{'asc' if ascending else 'desc'}",
        }
        if statuses is not None:
            params["status"] = in_list(statuses)
        return await self._select("goal", params)

    async def get_goal(self, goal_id: str) -> Optional[Row]:
        return await self._first("goal", {"goal_id": f"eq.{goal_id}"})

    async def insert_goal(self, values: Row) -> Row:
        return await self._insert("goal", values)

    # -- exercises ----------------------------------------------------------

    async def list_exercises(self, created_by: str) -> List[Row]:
        return await self._select("exercise", {"created_by": f"eq.{created_by}", "order": "title.asc"})

    async def get_exercise(self, exercise_id: str) -> Optional[Row]:
        return await self._first("exercise", {"exercise_id": f"eq.{exercise_id}"})

    async def insert_exercise(self, values: Row) -> Row:
        return await self._insert("exercise", values)

    async def list_goal_exercises(self, goal_ids: Sequence[str]) -> List[Row]:
        if not goal_ids:
            return []
        return await self._request(
            "GET",
            "goal_exercise_set",
            params={"select": "*,exercise:exercise_id(*),goal:goal_id(*)", "goal_id": in_list(goal_ids)},
        )

    async def insert_goal_exercise(self, values: Row) -> Row:
        return await self._insert("goal_exercise_set", values)

    async def list_session_exercises(self, session_ids: Sequence[str]) -> List[Row]:
        if not session_ids:
            return []
        return await self._request(
            "GET",
            "session_exercise",
            params={
                "select": "*,exercise:exercise_id(*)",
                "session_id": in_list(session_ids),
                "order": "created_at.desc",
            },
        )

    async def insert_session_exercise(self, values: Row) -> Row:
        return await self._insert("session_exercise", values)

    async def update_session_exercise(self, session_id: str, exercise_id: str, values: Row) -> Optional[Row]:
        return await self._update(
            "session_exercise",
            {"session_id": f"eq.{session_id}", "exercise_id": f"eq.{exercise_id}"},
            values,
        )

    async def ping(self):
        await self._request("GET", "user_directory", params={"select": "user_id", "limit": 1})
        return 1

    async def close(self) -> None:
        await self._client.aclose()
