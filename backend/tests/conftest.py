import os

os.environ["STORE_BACKEND"] = "sql"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["SEED_DEMO_ACCOUNTS"] = "false"

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from ownurvoice.db import create_tables
from ownurvoice.main import app
from ownurvoice.schemas import RegisterRequest
from ownurvoice.services.auth_service import register_account
from ownurvoice.stores import get_identity_provider, get_store
from ownurvoice.stores.sql import LocalIdentityProvider, SqlStore

PASSWORD = "password123"


def therapist_form(**overrides):
    form = {
        "role": "therapist",
        "username": "drsmith",
        "email": "smith@example.com",
        "password": PASSWORD,
        "confirmPassword": PASSWORD,
        "firstName": "Anna",
        "lastName": "Smith",
        "phoneNumber": "07123456789",
        "dateOfBirth": "1980-03-02",
        "clinicName": "Northside Speech Clinic",
        "yearsOfExperience": 12,
        "qualification": "MSc Speech and Language Therapy",
    }
    form.update(overrides)
    return form


def patient_form(**overrides):
    form = {
        "role": "patient",
        "username": "Will",
        "email": "will@example.com",
        "password": "WD1234",
        "firstName": "Will",
        "lastName": "Davies",
        "phoneNumber": "07987654321",
        "dateOfBirth": "2001-07-14",
        "therapyStartDate": "2024-09-01",
        "preferredContactMethod": "email",
    }
    form.update(overrides)
    return form


@pytest.fixture
async def engine(tmp_path):
    # file db + NullPool so concurrent branches each get their own connection
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ownurvoice.db'}", poolclass=NullPool)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def store(sessionmaker):
    return SqlStore(sessionmaker)


@pytest.fixture
def identity(sessionmaker):
    return LocalIdentityProvider(sessionmaker)


@pytest.fixture
def register(store, identity):
    """Register through the real flow; returns the flow's result."""
    async def _register(form):
        return await register_account(store, identity, RegisterRequest(**form))
    return _register


@pytest.fixture
async def client(store, identity):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_identity_provider] = lambda: identity
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}
