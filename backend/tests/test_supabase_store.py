import json
from datetime import date

import httpx
import pytest

from ownurvoice.exceptions import AuthError, IdentityError, StoreError
from ownurvoice.stores.supabase import (
    SupabaseIdentityProvider, SupabaseStore, in_list, make_client,
)

URL = "https://project.supabase.co"


class Recorder:
    """MockTransport handler replaying canned responses and keeping the requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def backend(*responses):
    recorder = Recorder(*responses)
    client = make_client(URL, "anon-key", transport=httpx.MockTransport(recorder))
    return SupabaseStore(client), SupabaseIdentityProvider(client), recorder


def test_make_client_requires_settings():
    with pytest.raises(RuntimeError):
        make_client("", "")


def test_in_list_quotes_values():
    assert in_list(["a", 'b"c']) == 'in.("a","b\\"c")'


async def test_sign_up_accepts_bare_user():
    _, identity, recorder = backend(httpx.Response(200, json={"id": "acc-1", "email": "will@example.com"}))

    account = await identity.sign_up("will@example.com", "WD1234")

    assert account.id == "acc-1"
    request = recorder.requests[0]
    assert request.url.path == "/auth/v1/signup"
    assert request.headers["apikey"] == "anon-key"
    assert json.loads(request.content) == {"email": "will@example.com", "password": "WD1234"}


async def test_sign_up_rejection_is_identity_error():
    _, identity, _ = backend(httpx.Response(422, json={"code": 422, "msg": "User already registered"}))

    with pytest.raises(IdentityError) as exc:
        await identity.sign_up("will@example.com", "WD1234")
    assert exc.value.message == "User already registered"


async def test_sign_in():
    _, identity, recorder = backend(
        httpx.Response(200, json={"access_token": "jwt", "user": {"id": "acc-1", "email": "will@example.com"}}),
        httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"}),
        httpx.Response(503, text="upstream unavailable"),
    )

    account = await identity.sign_in("will@example.com", "WD1234")
    assert account.id == "acc-1"
    assert recorder.requests[0].url.params["grant_type"] == "password"

    with pytest.raises(AuthError):
        await identity.sign_in("will@example.com", "wrong")
    with pytest.raises(IdentityError):
        await identity.sign_in("will@example.com", "WD1234")


async def test_directory_lookup_matches_username_or_email():
    rows = [{"user_id": "p1", "account_id": "acc-1", "username": "Will", "email": "will@example.com", "user_role": "patient"}]
    store, _, recorder = backend(httpx.Response(200, json=rows))

    assert await store.find_directory_entries("Will") == rows

    request = recorder.requests[0]
    assert request.url.path == "/rest/v1/user_directory"
    assert request.url.params["or"] == '(username.eq."Will",email.eq."will")'


async def test_email_lookups_match_exactly():
    store, _, recorder = backend(httpx.Response(200, json=[]), httpx.Response(200, json=[]))

    # "_" and "%" are pattern characters for ilike; they must reach the API as plain text
    assert await store.find_unlinked_patient("Will_D@Example.com") is None
    assert await store.find_patient("will%@example.com") is None

    unlinked = recorder.requests[0].url.params
    assert unlinked["email"] == "eq.will_d@example.com"
    assert unlinked["account_id"] == "is.null"
    assert recorder.requests[1].url.params["or"] == '(username.eq."will%@example.com",email.eq."will%@example.com")'
    assert not any("ilike" in str(r.url) for r in recorder.requests)


async def test_sessions_embed_therapist_summary():
    store, _, recorder = backend(httpx.Response(200, json=[]))

    await store.list_sessions(patient_id="p1", date_from=date(2025, 1, 1), ascending=True, embed="therapist")

    params = recorder.requests[0].url.params
    assert params["select"] == "*,therapist:therapist_id(user_id,first_name,last_name,qualification)"
    assert params["patient_id"] == "eq.p1"
    assert params["session_date"] == "gte.2025-01-01"
    assert params["order"] == "session_date.asc,session_time.asc"


async def test_insert_asks_for_representation():
    store, _, recorder = backend(httpx.Response(201, json=[{"goal_id": "g1", "status": "active"}]))

    row = await store.insert_goal({"goal_id": "g1", "session_id": "s1", "target_date": date(2025, 5, 1)})

    assert row["goal_id"] == "g1"
    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.headers["prefer"] == "return=representation"
    assert json.loads(request.content) == [{"goal_id": "g1", "session_id": "s1", "target_date": "2025-05-01"}]


async def test_update_without_match_returns_none():
    store, _, recorder = backend(httpx.Response(200, json=[]))

    assert await store.update_session_exercise("s1", "e1", {"completed": True}) is None
    params = recorder.requests[0].url.params
    assert params["session_id"] == "eq.s1"
    assert params["exercise_id"] == "eq.e1"


async def test_empty_id_lists_skip_the_request():
    store, _, recorder = backend()

    assert await store.list_goals([]) == []
    assert await store.list_profiles("patient", []) == []
    assert recorder.requests == []


async def test_errors_become_store_errors():
    store, _, _ = backend(httpx.Response(400, json={"message": 'relation "public.goal" does not exist'}))

    with pytest.raises(StoreError) as exc:
        await store.get_goal("g1")
    assert exc.value.message == 'relation "public.goal" does not exist'


async def test_transport_failure_is_store_error():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = SupabaseStore(make_client(URL, "anon-key", transport=httpx.MockTransport(unreachable)))

    with pytest.raises(StoreError):
        await store.ping()
