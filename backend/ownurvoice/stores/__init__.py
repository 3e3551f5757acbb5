import logging
from typing import Tuple

from fastapi import Request

from ownurvoice.config import STORE_BACKEND
from ownurvoice.stores.base import IdentityProvider, Store

logger = logging.getLogger(__name__)


def build_backends(backend: str = STORE_BACKEND) -> Tuple[Store, IdentityProvider]:
    """Instantiate the configured store / identity-provider pair."""
    if backend == "sql":
        from ownurvoice.db import SessionLocal
        from ownurvoice.stores.sql import LocalIdentityProvider, SqlStore

        logger.info("Using SQL store backend")
        return SqlStore(SessionLocal), LocalIdentityProvider(SessionLocal)

    if backend == "supabase":
        from ownurvoice.stores.supabase import SupabaseIdentityProvider, SupabaseStore, make_client

        logger.info("Using Supabase store backend")
        client = make_client()
        return SupabaseStore(client), SupabaseIdentityProvider(client)

    raise ValueError(f"Unknown STORE_BACKEND: {backend!r} (expected 'sql' or 'supabase')")


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity
