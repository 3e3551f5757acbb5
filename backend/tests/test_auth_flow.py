from datetime import date, datetime, timezone

import pytest

from conftest import PASSWORD, patient_form, therapist_form
from ownurvoice.exceptions import AuthError, IdentityError, StoreError, ValidationError
from ownurvoice.schemas import LinkPatientRequest, PatientCreate, RegisterRequest, UserPublic
from ownurvoice.config import ACCESS_TOKEN_EXPIRE_MINUTES
from ownurvoice.security import decode_access_token
from ownurvoice.services import auth_service, therapy_service
from ownurvoice.stores.sql import SqlStore


async def test_register_patient_then_login_by_username(register, store, identity):
    result = await register(patient_form())

    assert result["user"]["role"] == "patient"
    assert result["user"]["username"] == "Will"
    assert result["redirect"] == "/patient-dashboard"
    entries = await store.find_directory_entries("will@example.com")
    assert [e["user_role"] for e in entries] == ["patient"]

    login = await auth_service.login(store, identity, "Will", "WD1234")
    assert login["redirect"] == "/patient-dashboard"
    assert login["user"]["email"] == "will@example.com"
    assert login["user"]["therapyStartDate"] == "2024-09-01"


async def test_login_by_email_is_case_insensitive(register, store, identity):
    await register(therapist_form())

    login = await auth_service.login(store, identity, "Smith@Example.com", PASSWORD)

    assert login["redirect"] == "/therapist-dashboard"
    assert login["user"]["clinicName"] == "Northside Speech Clinic"


async def test_token_claims(register):
    result = await register(therapist_form())

    claims = decode_access_token(result["token"])

    assert claims["sub"] == result["user"]["id"]
    assert claims["role"] == "therapist"
    assert claims["username"] == "drsmith"
    assert claims["email"] == "smith@example.com"
    lifetime = datetime.fromtimestamp(claims["exp"], timezone.utc) - datetime.now(timezone.utc)
    assert abs(lifetime.total_seconds() - ACCESS_TOKEN_EXPIRE_MINUTES * 60) < 60


async def test_parent_carer_redirect(register, store, identity):
    await register({
        "role": " Parent_Carer ",
        "username": "mum",
        "email": "mum@example.com",
        "password": PASSWORD,
        "firstName": "Mary",
        "lastName": "Davies",
        "phoneNumber": "07000000000",
        "dateOfBirth": "1975-01-01",
        "relationshipToPatient": "mother",
    })

    login = await auth_service.login(store, identity, "mum", PASSWORD)

    assert login["user"]["role"] == "parent_carer"
    assert login["redirect"] == "/parent-dashboard"


async def test_wrong_password_and_unknown_user_give_same_error(register, store, identity):
    await register(patient_form())

    with pytest.raises(AuthError) as wrong_password:
        await auth_service.login(store, identity, "Will", "not-the-password")
    with pytest.raises(AuthError) as unknown_user:
        await auth_service.login(store, identity, "nobody", "WD1234")

    assert wrong_password.value.message == unknown_user.value.message == "Invalid username or password"


async def test_login_requires_both_fields(store, identity):
    with pytest.raises(ValidationError):
        await auth_service.login(store, identity, "  ", "x")
    with pytest.raises(ValidationError):
        await auth_service.login(store, identity, "Will", "")


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"role": "admin"}, "Role must be"),
        ({"role": None}, "Role is required"),
        ({"firstName": ""}, "first name"),
        ({"email": "not-an-email"}, "Invalid email"),
        ({"password": "abc", "confirmPassword": "abc"}, "at least 6"),
        ({"confirmPassword": "different"}, "do not match"),
        ({"clinicName": None}, "clinic name"),
    ],
)
async def test_registration_validation(register, overrides, message):
    with pytest.raises(ValidationError) as exc:
        await register(therapist_form(**overrides))
    assert message in exc.value.message


@pytest.mark.parametrize("email", ["will@example..com", "will@.example.com", "will@example.c", "will example@example.com"])
async def test_malformed_email_is_rejected_before_sign_up(register, identity, email):
    with pytest.raises(ValidationError) as exc:
        await register(patient_form(email=email))

    assert exc.value.message == "Invalid email format"
    with pytest.raises(AuthError):
        await identity.sign_in(email, "WD1234")


def test_email_validation_accepts_ordinary_addresses():
    assert auth_service.is_valid_email("will.davies+therapy@example.co.uk")
    assert not auth_service.is_valid_email("")


def test_request_models_accept_camel_and_snake_case():
    assert RegisterRequest(firstName="Will").first_name == "Will"
    assert RegisterRequest(first_name="Will").first_name == "Will"
    assert PatientCreate(phoneNumber="07987654321").phone_number == "07987654321"
    assert PatientCreate(phone_number="07987654321").phone_number == "07987654321"
    assert LinkPatientRequest(usernameOrEmail="Will").username_or_email == "Will"

    user = UserPublic(user_id="p1", username="Will", email="will@example.com", role="patient")
    assert user.model_dump(by_alias=True, exclude_none=True) == {
        "userId": "p1", "username": "Will", "email": "will@example.com", "role": "patient",
    }


async def test_patient_requires_role_specific_fields(register):
    with pytest.raises(ValidationError) as exc:
        await register(patient_form(preferredContactMethod=""))
    assert "preferred contact method" in exc.value.message


async def test_confirm_password_is_optional(register):
    form = therapist_form()
    del form["confirmPassword"]

    result = await register(form)

    assert result["user"]["username"] == "drsmith"


async def test_duplicate_username_fails_before_account_is_created(register, identity):
    await register(therapist_form())

    with pytest.raises(ValidationError) as exc:
        await register(patient_form(username="drsmith", email="other@example.com"))

    assert exc.value.message == "Username already exists"
    with pytest.raises(AuthError):
        await identity.sign_in("other@example.com", "WD1234")


async def test_duplicate_email_is_identity_error(register):
    await register(therapist_form())

    with pytest.raises(IdentityError):
        await register(patient_form(email="smith@example.com"))


async def test_username_collision_across_tables_is_generic_auth_error(register, store, identity):
    await register(therapist_form(username="sam"))
    # legacy data: the same username in a second role table
    await store.insert_profile("patient", {
        "user_id": "legacy-patient",
        "account_id": "legacy-account",
        "username": "sam",
        "email": "sam@legacy.example.com",
        "first_name": "Sam",
        "last_name": "Legacy",
        "user_role": "patient",
    })

    with pytest.raises(AuthError) as exc:
        await auth_service.login(store, identity, "sam", PASSWORD)
    assert exc.value.message == "Invalid username or password"


class ProfileInsertFails(SqlStore):
    async def insert_profile(self, role, values):
        raise StoreError("insert or update on table violates foreign key constraint")


async def test_profile_insert_failure_leaves_orphaned_account(sessionmaker, identity):
    store = ProfileInsertFails(sessionmaker)

    with pytest.raises(StoreError):
        await auth_service.register_account(store, identity, RegisterRequest(**patient_form()))

    # no rollback: the identity account exists without a profile
    account = await identity.sign_in("will@example.com", "WD1234")
    assert account.email == "will@example.com"
    assert await store.get_directory_entry_by_account(account.id) is None


async def test_patient_registration_claims_row_added_by_therapist(register, store, identity):
    therapist = await register(therapist_form())
    therapist_id = therapist["user"]["userId"]
    added = await therapy_service.add_patient(store, therapist_id, PatientCreate(
        username="Will",
        email="will@example.com",
        first_name="William",
        last_name="Davies",
        phone_number="07987 654321",
        date_of_birth=date(2001, 7, 14),
    ))
    pre_existing_id = added["patient"]["user_id"]
    assert added["patient"]["account_id"] is None

    result = await register(patient_form())

    # same profile row, now linked to the new account
    assert result["user"]["userId"] == pre_existing_id
    assert result["user"]["id"] != pre_existing_id
    claimed = await store.get_profile("patient", pre_existing_id)
    assert claimed["account_id"] == result["user"]["id"]
    assert claimed["first_name"] == "Will"
    assert len(await store.find_directory_entries("will@example.com")) == 1

    login = await auth_service.login(store, identity, "Will", "WD1234")
    assert login["user"]["userId"] == pre_existing_id


class UnlinkedLookupFails(SqlStore):
    async def find_unlinked_patient(self, email):
        raise StoreError("connection reset")


async def test_auto_link_failure_falls_back_to_insert(sessionmaker, identity):
    store = UnlinkedLookupFails(sessionmaker)

    result = await auth_service.register_account(store, identity, RegisterRequest(**patient_form()))

    assert result["user"]["userId"] == result["user"]["id"]
    assert (await store.get_profile("patient", result["user"]["userId"]))["user_role"] == "patient"


async def _therapist_added_patient(store, identity):
    therapist = await auth_service.register_account(store, identity, RegisterRequest(**therapist_form()))
    added = await therapy_service.add_patient(store, therapist["user"]["userId"], PatientCreate(
        username="Will",
        email="will@example.com",
        first_name="William",
        last_name="Davies",
        phone_number="07987 654321",
        date_of_birth=date(2001, 7, 14),
    ))
    return added["patient"]["user_id"]


class ClaimDetailsFail(SqlStore):
    """Writing the registration details fails; attaching the account alone works."""

    async def update_profile(self, role, user_id, values):
        if "first_name" in values:
            raise StoreError("value too long for type character varying")
        return await super().update_profile(role, user_id, values)


class ClaimUpdateFails(SqlStore):
    inserts = 0

    async def update_profile(self, role, user_id, values):
        raise StoreError("permission denied for table patient")

    async def insert_profile(self, role, values):
        self.inserts += 1
        return await super().insert_profile(role, values)


async def test_failed_claim_still_links_the_account(sessionmaker, identity):
    store = ClaimDetailsFail(sessionmaker)
    pre_existing_id = await _therapist_added_patient(store, identity)

    result = await auth_service.register_account(store, identity, RegisterRequest(**patient_form()))

    assert result["user"]["userId"] == pre_existing_id
    linked = await store.get_profile("patient", pre_existing_id)
    assert linked["account_id"] == result["user"]["id"]
    # the therapist's details are kept when only the link could be written
    assert linked["first_name"] == "William"
    login = await auth_service.login(store, identity, "Will", "WD1234")
    assert login["user"]["userId"] == pre_existing_id


async def test_failed_claim_with_new_username_inserts_fresh_row(sessionmaker, identity):
    store = ClaimUpdateFails(sessionmaker)
    pre_existing_id = await _therapist_added_patient(store, identity)
    store.inserts = 0

    result = await auth_service.register_account(
        store, identity, RegisterRequest(**patient_form(username="will_d"))
    )

    assert result["user"]["userId"] == result["user"]["id"]
    assert result["user"]["userId"] != pre_existing_id
    assert store.inserts == 1
    assert (await store.get_profile("patient", pre_existing_id))["account_id"] is None
    login = await auth_service.login(store, identity, "will_d", "WD1234")
    assert login["user"]["userId"] == result["user"]["userId"]


async def test_failed_claim_never_inserts_a_duplicate_username(sessionmaker, identity):
    store = ClaimUpdateFails(sessionmaker)
    pre_existing_id = await _therapist_added_patient(store, identity)
    store.inserts = 0

    with pytest.raises(StoreError) as exc:
        await auth_service.register_account(store, identity, RegisterRequest(**patient_form()))

    assert exc.value.message == "Could not link the existing patient profile"
    assert store.inserts == 0
    account = await identity.sign_in("will@example.com", "WD1234")
    assert await store.get_directory_entry_by_account(account.id) is None
    assert len(await store.find_directory_entries("Will")) == 1
    assert (await store.get_profile("patient", pre_existing_id))["account_id"] is None
