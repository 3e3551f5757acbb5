from fastapi import APIRouter, Depends, status

from ownurvoice.schemas import LoginRequest, RegisterRequest
from ownurvoice.services import auth_service
from ownurvoice.services.auth_service import UserContext, get_current_user, serialize_user
from ownurvoice.stores import get_identity_provider, get_store
from ownurvoice.stores.base import IdentityProvider, Store

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    store: Store = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    result = await auth_service.register_account(store, identity, payload)
    return {"success": True, "message": "User registered successfully", "data": result}


@router.post("/login")
async def login(
    payload: LoginRequest,
    store: Store = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    result = await auth_service.login(store, identity, payload.login, payload.password)
    return {"success": True, "message": "Login successful", "data": result}


@router.get("/verify")
async def verify(
    current_user: UserContext = Depends(get_current_user),
    store: Store = Depends(get_store),
):
    """Token check used on page load; returns the user as stored now."""
    profile = await store.get_profile(current_user.role, current_user.user_id)
    if profile is None:
        profile = {
            "user_id": current_user.user_id,
            "username": current_user.username,
            "email": current_user.email,
            "user_role": current_user.role,
        }
    return {"success": True, "data": {"user": serialize_user(profile, current_user.account_id)}}
