"""
Owner-scoped storage of Accurate credentials.

Every lookup is filtered by owner so a credential belonging to someone else
is indistinguishable from one that does not exist.
"""

from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ..context.operation_context import operation
from ..db.db_credential_models import AccurateCredential
from ..exceptions import ValidationError, not_found
from ..schemas import CredentialCreate, CredentialTokenUpdate, ResolvedDatabase, TokenGrant
from ..utils.crud_helpers import create_record, delete_record, get_record_by_id, list_records, update_record
from ..utils.logger import get_logger


def _invalid(e: PydanticValidationError) -> ValidationError:
    first = e.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return ValidationError(
        f"Invalid credential: {field}: {first.get('msg')}",
        field=field,
        reason=first.get("msg"),
        cause=e,
    )


class CredentialService:
    """
    Service for managing Accurate credentials.

    This service provides:
    - Creation after OAuth exchange or manual entry
    - Owner-scoped reads, listing, and deletion (cascading to jobs)
    - Token and session replacement on refresh
    """

    def __init__(self, session: Session):
        """Initialize with SQLAlchemy session."""
        self.session = session
        self.logger = get_logger()

    @operation(name="credential_service.create")
    def create(
        self,
        owner_id: str,
        app_key: str,
        signature_secret: str,
        api_token: str,
        host: str,
        refresh_token: Optional[str] = None,
        session_id: Optional[str] = None,
        database_id: Optional[str] = None,
    ) -> AccurateCredential:
        """
        Persist a credential.

        Raises:
            ValidationError: If a required field is missing or the host is not a plain host name
        """
        try:
            data = CredentialCreate(
                owner_id=owner_id,
                app_key=app_key,
                signature_secret=signature_secret,
                api_token=api_token,
                refresh_token=refresh_token,
                host=host,
                session=session_id,
                database_id=database_id,
            )
        except PydanticValidationError as e:
            raise _invalid(e)

        credential = create_record(self.session, AccurateCredential, data.model_dump())
        self.logger.info(
            "Credential stored",
            extra={"credential_id": credential.id, "owner_id": owner_id, "host": credential.host},
        )
        return credential

    def get(self, credential_id: str, owner_id: str) -> AccurateCredential:
        """
        Fetch a credential owned by ``owner_id``.

        Raises:
            NotFoundError: If it does not exist or belongs to another owner
        """
        credential = get_record_by_id(self.session, AccurateCredential, credential_id, owner_id)
        if credential is None or credential.owner_id != owner_id:
            raise not_found("Credential", credential_id=credential_id)
        return credential

    def list(self, owner_id: str) -> List[AccurateCredential]:
        return list_records(self.session, AccurateCredential, owner_id=owner_id)

    @operation(name="credential_service.delete")
    def delete(self, credential_id: str, owner_id: str) -> None:
        """Delete a credential and, through the cascade, all of its jobs."""
        self.get(credential_id, owner_id)
        delete_record(self.session, AccurateCredential, credential_id, owner_id)

    @operation(name="credential_service.update_tokens")
    def update_tokens(
        self,
        credential_id: str,
        owner_id: str,
        grant: TokenGrant,
        resolved: ResolvedDatabase,
    ) -> AccurateCredential:
        """Replace tokens, host, and session after a refresh."""
        self.get(credential_id, owner_id)
        try:
            data = CredentialTokenUpdate(
                api_token=grant.api_token,
                refresh_token=grant.refresh_token,
                host=resolved.host,
                session=resolved.session,
                database_id=resolved.database_id,
            )
        except PydanticValidationError as e:
            raise _invalid(e)

        return update_record(
            self.session, AccurateCredential, credential_id, data.model_dump(), owner_id
        )
