"""
Tests for CredentialService.

Uses the in-memory SQLite database; no provider calls are involved.
"""

import pytest

from accurate_exchange.db import AccurateCredential, ImportJob, JobItem
from accurate_exchange.exceptions import NotFoundError, ValidationError
from accurate_exchange.schemas import CredentialRead, ResolvedDatabase, TokenGrant
from accurate_exchange.services.credential_service import CredentialService
from tests.fixtures.factories import CredentialFactory, JobItemFactory


@pytest.fixture
def service(db_session):
    return CredentialService(db_session)


def create(service, owner_id="owner-123", **overrides):
    data = {
        "owner_id": owner_id,
        "app_key": "app-key-1",
        "signature_secret": "sig-secret",
        "api_token": "token-1",
        "host": "zeus.accurate.id",
        "refresh_token": "refresh-1",
        "session_id": "db-session-1",
        "database_id": "12",
    }
    data.update(overrides)
    return service.create(**data)


class TestCreate:
    """Persisting credentials."""

    def test_create_persists_all_fields(self, service, db_session):
        credential = create(service)

        stored = db_session.get(AccurateCredential, credential.id)
        assert stored.owner_id == "owner-123"
        assert stored.host == "zeus.accurate.id"
        assert stored.session == "db-session-1"
        assert stored.refresh_token == "refresh-1"
        assert stored.created_at is not None

    def test_host_with_scheme_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            create(service, host="https://zeus.accurate.id")
        assert exc_info.value.field == "host"

    def test_missing_token_rejected(self, service):
        with pytest.raises(ValidationError):
            create(service, api_token="")

    def test_duplicate_owner_app_key_allowed(self, service):
        first = create(service)
        second = create(service)
        assert first.id != second.id

    def test_read_schema_hides_secrets(self, service):
        data = CredentialRead.model_validate(create(service)).model_dump()
        assert "signature_secret" not in data
        assert "api_token" not in data
        assert data["host"] == "zeus.accurate.id"


class TestOwnerScoping:
    """Every lookup is owner-scoped."""

    def test_get_own_credential(self, service, db_session):
        credential = CredentialFactory()
        assert service.get(credential.id, "owner-123").id == credential.id

    def test_get_other_owner_is_not_found(self, service, db_session):
        credential = CredentialFactory(owner_id="someone-else")
        with pytest.raises(NotFoundError):
            service.get(credential.id, "owner-123")

    def test_get_missing_is_not_found(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            service.get("does-not-exist", "owner-123")
        assert exc_info.value.status_code == 404

    def test_list_only_own(self, service, db_session):
        CredentialFactory()
        CredentialFactory()
        CredentialFactory(owner_id="someone-else")

        assert len(service.list("owner-123")) == 2
        assert len(service.list("someone-else")) == 1

    def test_delete_other_owner_is_not_found(self, service, db_session):
        credential = CredentialFactory(owner_id="someone-else")
        with pytest.raises(NotFoundError):
            service.delete(credential.id, "owner-123")
        assert db_session.get(AccurateCredential, credential.id) is not None


class TestDelete:
    def test_delete_cascades_to_jobs_and_items(self, service, db_session):
        item = JobItemFactory()
        credential_id = item.job.credential_id

        service.delete(credential_id, "owner-123")

        assert db_session.query(AccurateCredential).count() == 0
        assert db_session.query(ImportJob).count() == 0
        assert db_session.query(JobItem).count() == 0


class TestUpdateTokens:
    def test_replaces_token_host_and_session(self, service, db_session):
        credential = CredentialFactory()

        updated = service.update_tokens(
            credential.id,
            "owner-123",
            TokenGrant(api_token="token-2", refresh_token="refresh-2"),
            ResolvedDatabase(host="apollo.accurate.id", session="db-session-2", database_id="12"),
        )

        assert updated.api_token == "token-2"
        assert updated.refresh_token == "refresh-2"
        assert updated.host == "apollo.accurate.id"
        assert updated.session == "db-session-2"

    def test_keeps_refresh_token_when_not_rotated(self, service, db_session):
        credential = CredentialFactory()

        updated = service.update_tokens(
            credential.id,
            "owner-123",
            TokenGrant(api_token="token-2"),
            ResolvedDatabase(host="zeus.accurate.id", session="db-session-2"),
        )

        assert updated.refresh_token == "refresh-1"

    def test_other_owner_cannot_refresh(self, service, db_session):
        credential = CredentialFactory(owner_id="someone-else")
        with pytest.raises(NotFoundError):
            service.update_tokens(
                credential.id,
                "owner-123",
                TokenGrant(api_token="token-2"),
                ResolvedDatabase(host="zeus.accurate.id"),
            )
