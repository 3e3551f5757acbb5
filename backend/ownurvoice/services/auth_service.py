"""
Registration, login and the request-scoped current user.

Both flows run against the ``Store`` / ``IdentityProvider`` pair picked by
``STORE_BACKEND``; nothing here knows which backend is live.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from email_validator import EmailNotValidError, validate_email
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from ownurvoice.config import PASSWORD_MIN_LENGTH, ROLE_REDIRECTS
from ownurvoice.exceptions import (
    AuthError, PermissionDeniedError, StoreError, ValidationError,
)
from ownurvoice.models import ROLES
from ownurvoice.schemas import RegisterRequest, UserPublic
from ownurvoice.security import create_access_token, decode_access_token
from ownurvoice.stores import get_store
from ownurvoice.stores.base import IdentityProvider, Row, Store

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

COMMON_FIELDS = {
    "username": "username",
    "email": "email",
    "password": "password",
    "first_name": "first name",
    "last_name": "last name",
    "phone_number": "phone number",
    "date_of_birth": "date of birth",
}

ROLE_FIELDS = {
    "therapist": {
        "clinic_name": "clinic name",
        "years_of_experience": "years of experience",
        "qualification": "qualification",
    },
    "patient": {
        "therapy_start_date": "therapy start date",
        "preferred_contact_method": "preferred contact method",
    },
    "parent_carer": {
        "relationship_to_patient": "relationship to patient",
    },
}


@dataclass
class UserContext:
    """The authenticated caller, resolved fresh from the directory per request."""
    account_id: str
    user_id: str
    username: str
    email: str
    role: str


def normalize_role(role: Optional[str]) -> str:
    return (role or "").strip().lower()


def redirect_for(role: str) -> str:
    return ROLE_REDIRECTS.get(normalize_role(role), "/")


def is_valid_email(email: str) -> bool:
    """Syntax only; no DNS lookups. Top-level domains are at least two letters."""
    try:
        result = validate_email(email or "", check_deliverability=False)
    except EmailNotValidError:
        return False
    return len(result.domain.rsplit(".", 1)[-1]) >= 2


def serialize_user(profile: Row, account_id: Optional[str] = None) -> Dict[str, Any]:
    """Profile row -> camelCase user object for the client."""
    user = UserPublic(
        **{k: v for k, v in profile.items() if k in UserPublic.model_fields and k != "id"},
        id=account_id or profile.get("account_id"),
        role=normalize_role(profile.get("user_role")),
    )
    return user.model_dump(by_alias=True, mode="json", exclude_none=True)


def issue_token(account_id: str, profile: Row) -> str:
    return create_access_token({
        "sub": account_id,
        "role": normalize_role(profile.get("user_role")),
        "username": profile.get("username"),
        "email": profile.get("email"),
    })


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_registration(payload: RegisterRequest) -> Dict[str, Any]:
    """Trimmed field values for the chosen role; ValidationError on the first problem."""
    data = payload.model_dump()
    role = normalize_role(data.get("role"))
    if not role:
        raise ValidationError("Role is required")
    if role not in ROLES:
        raise ValidationError("Role must be therapist, patient or parent_carer")

    missing = [label for field, label in COMMON_FIELDS.items() if _blank(data.get(field))]
    missing += [label for field, label in ROLE_FIELDS[role].items() if _blank(data.get(field))]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    for key, value in data.items():
        if isinstance(value, str) and key not in ("password", "confirm_password"):
            data[key] = value.strip()
    data["role"] = role
    data["email"] = data["email"].lower()

    if not is_valid_email(data["email"]):
        raise ValidationError("Invalid email format")
    if len(data["password"]) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if data.get("confirm_password") is not None and data["confirm_password"] != data["password"]:
        raise ValidationError("Passwords do not match")
    if role == "therapist" and data["years_of_experience"] < 0:
        raise ValidationError("Years of experience cannot be negative")
    return data


def profile_values(data: Dict[str, Any]) -> Row:
    role = data["role"]
    values = {
        "username": data["username"],
        "email": data["email"],
        "first_name": data["first_name"],
        "last_name": data["last_name"],
        "phone_number": data["phone_number"],
        "date_of_birth": data["date_of_birth"],
        "user_role": role,
    }
    for field in ROLE_FIELDS[role]:
        values[field] = data[field]
    return values


async def _claimable_patient(store: Store, email: str) -> Optional[Row]:
    # best effort: a lookup failure only means we insert a fresh row
    try:
        return await store.find_unlinked_patient(email)
    except StoreError as e:
        logger.warning("Patient auto-link lookup failed for %s: %s", email, e.message)
        return None


async def _claim_patient(store: Store, patient: Row, account_id: str, values: Row) -> Optional[Row]:
    try:
        claimed = await store.update_profile("patient", patient["user_id"], {**values, "account_id": account_id})
    except StoreError as e:
        logger.warning("Patient auto-link failed for profile %s: %s", patient["user_id"], e.message)
        return None
    if claimed is None:
        # link-only retry: the row keeps the therapist's details but gains the account
        try:
            claimed = await store.update_profile("patient", patient["user_id"], {"account_id": account_id})
        except StoreError as e:
            logger.warning("Patient link retry failed for profile %s: %s", patient["user_id"], e.message)
            return None
    if claimed is not None:
        logger.info("Linked account %s to existing patient profile %s", account_id, patient["user_id"])
    return claimed


async def _insert_profile(store: Store, role: str, account_id: str, values: Row, claimable: Optional[Row]) -> Row:
    if claimable and await store.username_exists(values["username"]):
        # the unclaimed row still holds this username; an insert would hit the unique index
        raise StoreError("Could not link the existing patient profile")
    return await store.insert_profile(role, {**values, "user_id": account_id, "account_id": account_id})


async def register_account(store: Store, identity: IdentityProvider, payload: RegisterRequest) -> Dict[str, Any]:
    """
    Validate, create the identity account, then create (or, for a patient a
    therapist already added, claim) exactly one profile row.

    A claim that cannot be written falls back to a fresh row, unless the
    unclaimed row still holds the chosen username. A profile failure after
    the account exists leaves that account orphaned; it is logged, not
    rolled back.
    """
    # 1. validate
    data = validate_registration(payload)
    role = data["role"]

    # 2. username must be free (a patient row about to be claimed does not count)
    claimable = await _claimable_patient(store, data["email"]) if role == "patient" else None
    exclude = claimable["user_id"] if claimable else None
    if await store.username_exists(data["username"], exclude_user_id=exclude):
        logger.info("Registration rejected, username taken: %s", data["username"])
        raise ValidationError("Username already exists")

    # 3. identity account
    account = await identity.sign_up(data["email"], data["password"])
    logger.info("Created identity account %s for %s", account.id, data["email"])

    # 4. profile row
    values = profile_values(data)
    profile = await _claim_patient(store, claimable, account.id, values) if claimable else None
    if profile is None:
        try:
            profile = await _insert_profile(store, role, account.id, values, claimable)
        except StoreError:
            logger.error("Profile insert failed; identity account %s (%s) is orphaned", account.id, data["email"])
            raise

    logger.info("Registered %s %s", role, data["username"])
    return {
        "token": issue_token(account.id, profile),
        "user": serialize_user(profile, account.id),
        "redirect": redirect_for(role),
    }


async def login(store: Store, identity: IdentityProvider, login_name: str, password: Optional[str]) -> Dict[str, Any]:
    """Username or email + password. Every credential failure is the same AuthError."""
    login_name = (login_name or "").strip()
    if not login_name or not password:
        raise ValidationError("Username/email and password are required")

    # 1. single directory lookup; rows without an account cannot sign in
    entries = [e for e in await store.find_directory_entries(login_name) if e.get("account_id")]
    if not entries:
        logger.info("Login failed, unknown user: %s", login_name)
        raise AuthError()
    if len(entries) > 1:
        logger.warning("Login refused, %s matches %d profiles", login_name, len(entries))
        raise AuthError()
    entry = entries[0]

    # 2. credentials
    try:
        account = await identity.sign_in(entry["email"], password)
    except AuthError:
        logger.info("Login failed, bad credentials for %s", login_name)
        raise AuthError()

    # 3. full profile for the client
    role = normalize_role(entry["user_role"])
    profile = await store.get_profile(role, entry["user_id"]) or entry
    logger.info("Login succeeded for %s (%s)", entry["username"], role)
    return {
        "token": issue_token(account.id, profile),
        "user": serialize_user(profile, account.id),
        "redirect": redirect_for(role),
    }


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    store: Store = Depends(get_store),
) -> UserContext:
    """
    Bearer token -> UserContext. The role comes from the directory, not the
    token, so a stale token cannot carry an outdated role.
    """
    if not token:
        raise AuthError("Not authenticated")
    claims = decode_access_token(token)

    entry = await store.get_directory_entry_by_account(claims["sub"])
    if entry is None:
        raise AuthError("Invalid token")
    return UserContext(
        account_id=entry["account_id"],
        user_id=entry["user_id"],
        username=entry["username"],
        email=entry["email"],
        role=normalize_role(entry["user_role"]),
    )


def require_role(*roles: str):
    async def dependency(current_user: UserContext = Depends(get_current_user)) -> UserContext:
        if current_user.role not in roles:
            raise PermissionDeniedError(f"Only {' or '.join(roles)} accounts can access this resource")
        return current_user
    return dependency


require_therapist = require_role("therapist")
require_patient = require_role("patient")
