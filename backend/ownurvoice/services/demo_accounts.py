import logging

from ownurvoice.exceptions import OwnUrVoiceError
from ownurvoice.schemas import RegisterRequest
from ownurvoice.services.auth_service import register_account
from ownurvoice.stores.base import IdentityProvider, Store

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"

DEMO_ACCOUNTS = [
    {
        "role": "therapist",
        "username": "therapist123",
        "email": "therapist@example.com",
        "first_name": "John",
        "last_name": "Therapist",
        "phone_number": "+1234567890",
        "date_of_birth": "1985-05-15",
        "clinic_name": "Speech Therapy Clinic",
        "years_of_experience": 10,
        "qualification": "Master of Speech-Language Pathology",
    },
    {
        "role": "patient",
        "username": "patient123",
        "email": "patient@example.com",
        "first_name": "Jane",
        "last_name": "Patient",
        "phone_number": "+0987654321",
        "date_of_birth": "1990-08-20",
        "therapy_start_date": "2024-01-15",
        "preferred_contact_method": "email",
    },
]


async def seed_demo_accounts(store: Store, identity: IdentityProvider) -> int:
    """Register the demo accounts that are not there yet. Returns how many were created."""
    created = 0
    for account in DEMO_ACCOUNTS:
        if await store.username_exists(account["username"]):
            continue
        try:
            await register_account(store, identity, RegisterRequest(**account, password=DEMO_PASSWORD))
        except OwnUrVoiceError as e:
            logger.warning("Could not seed demo account %s: %s", account["username"], e.message)
            continue
        created += 1
        logger.info("Seeded demo account %s", account["username"])
    return created
