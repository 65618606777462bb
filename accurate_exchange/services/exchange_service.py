"""
Caller-facing operations of the integration layer.

Each operation opens its own database session, runs the underlying service,
and wraps the outcome in an ``OperationResponse``: the payload on success, or
``{error_kind, message}`` with the status code of the error that stopped it.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..accurate.dispatcher import CredentialView, Dispatcher
from ..accurate.host_resolver import HostResolver
from ..accurate.oauth import OAuthClient
from ..config import AppConfig, get_config
from ..constants import ExportFormat, ExportMode
from ..db.db_config import get_db_manager
from ..exceptions import BaseError, ConfigurationError, get_correlation_id, validation_failed
from ..formats.parsers import parse_import_file
from ..schemas import CredentialRead, JobRead
from ..utils.logger import get_logger
from .credential_service import CredentialService
from .export_service import ExportService
from .import_service import ImportService
from .job_service import JobService


class OperationResponse(BaseModel):
    """Outcome of a facade operation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool = Field(description="Whether the operation succeeded")
    data: Any = Field(default=None, description="Operation payload on success")
    error_kind: Optional[str] = Field(default=None, description="Error family on failure")
    message: Optional[str] = Field(default=None, description="Human-readable failure reason")
    status_code: int = Field(default=200, description="HTTP-style status code")
    correlation_id: Optional[str] = Field(default=None)
    duration_ms: Optional[int] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def success(cls, data: Any = None, **kwargs) -> "OperationResponse":
        return cls(ok=True, data=data, **kwargs)

    @classmethod
    def failure(cls, error: Exception, **kwargs) -> "OperationResponse":
        """Build a failure from any exception; non-BaseError failures report as internal errors."""
        if isinstance(error, BaseError):
            return cls(
                ok=False,
                error_kind=error.error_kind,
                message=error.message,
                status_code=error.status_code,
                **kwargs,
            )
        return cls(
            ok=False,
            error_kind="InternalError",
            message=f"{type(error).__name__}: {error}",
            status_code=500,
            **kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "data": self.data}
        return {"ok": False, "errorKind": self.error_kind, "message": self.message}


class ExchangeService:
    """
    Entry point for OAuth connection, credential management, export and import.

    Args:
        session_factory: Callable returning a SQLAlchemy session; defaults to
            the global database manager
        dispatcher: Shared dispatcher, so every operation on a credential
            draws from the same rate limiter
        config: Application configuration
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        dispatcher: Optional[Dispatcher] = None,
        config: Optional[AppConfig] = None,
    ):
        self.config = config or get_config()
        self._session_factory = session_factory or get_db_manager().get_session
        self.dispatcher = dispatcher or Dispatcher(
            config=self.config.dispatcher, accurate_config=self.config.accurate
        )
        self.oauth = OAuthClient(self.dispatcher, self.config.accurate)
        self.resolver = HostResolver(self.dispatcher)
        self.exports = ExportService(self.dispatcher, self.config.export)
        self.logger = get_logger()

    def _run(self, action: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> OperationResponse:
        start_time = time.time()
        try:
            data = fn(*args, **kwargs)
        except BaseError as e:
            return OperationResponse.failure(
                e,
                correlation_id=e.context.get("correlation_id"),
                duration_ms=int((time.time() - start_time) * 1000),
            )
        except Exception as e:
            self.logger.error(
                f"Operation failed with exception: {action}",
                extra={"action": action, "error_type": type(e).__name__, "error_message": str(e)},
                exc_info=True,
            )
            return OperationResponse.failure(
                e,
                correlation_id=get_correlation_id(),
                duration_ms=int((time.time() - start_time) * 1000),
            )
        return OperationResponse.success(data, duration_ms=int((time.time() - start_time) * 1000))

    def _with_session(self, fn: Callable[[Session], Any]) -> Any:
        session = self._session_factory()
        try:
            return fn(session)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _app_identity(self, app_key: Optional[str], signature_secret: Optional[str]):
        app_key = app_key or self.config.accurate.app_key
        signature_secret = signature_secret or self.config.accurate.signature_secret
        missing = [
            name
            for name, value in (("app_key", app_key), ("signature_secret", signature_secret))
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing Accurate application configuration: {', '.join(missing)}",
                missing=missing,
            )
        return app_key, signature_secret

    # ==================== OAUTH & CREDENTIALS ====================

    def connect_oauth(self, state: Optional[str] = None) -> OperationResponse:
        """Consent URL to redirect the user to."""
        return self._run("connect_oauth", self.oauth.authorize_url, state)

    def complete_oauth(self, owner_id: str, code: str) -> OperationResponse:
        """
        Finish the OAuth callback: exchange the code, resolve the database, store a credential.

        Nothing is persisted unless host resolution succeeds.
        """

        def complete(session: Session) -> str:
            app_key, signature_secret = self._app_identity(None, None)
            grant = self.oauth.exchange_code_for_token(code)
            resolved = self.resolver.resolve_database(grant.api_token)
            credential = CredentialService(session).create(
                owner_id=owner_id,
                app_key=app_key,
                signature_secret=signature_secret,
                api_token=grant.api_token,
                host=resolved.host,
                refresh_token=grant.refresh_token,
                session_id=resolved.session,
                database_id=resolved.database_id,
            )
            return credential.id

        return self._run("complete_oauth", self._with_session, complete)

    def register_credential(
        self,
        owner_id: str,
        api_token: str,
        app_key: Optional[str] = None,
        signature_secret: Optional[str] = None,
    ) -> OperationResponse:
        """Store a manually entered API token after resolving its database host."""

        def register(session: Session) -> str:
            key, secret = self._app_identity(app_key, signature_secret)
            if not api_token or not api_token.strip():
                raise validation_failed("api_token", api_token, "must not be empty")
            resolved = self.resolver.resolve_database(api_token.strip())
            credential = CredentialService(session).create(
                owner_id=owner_id,
                app_key=key,
                signature_secret=secret,
                api_token=api_token.strip(),
                host=resolved.host,
                session_id=resolved.session,
                database_id=resolved.database_id,
            )
            return credential.id

        return self._run("register_credential", self._with_session, register)

    def list_credentials(self, owner_id: str) -> OperationResponse:
        def list_for_owner(session: Session) -> List[CredentialRead]:
            return [
                CredentialRead.model_validate(credential)
                for credential in CredentialService(session).list(owner_id)
            ]

        return self._run("list_credentials", self._with_session, list_for_owner)

    def delete_credential(self, owner_id: str, credential_id: str) -> OperationResponse:
        """Delete a credential together with its import jobs."""

        def delete(session: Session) -> str:
            CredentialService(session).delete(credential_id, owner_id)
            return credential_id

        return self._run("delete_credential", self._with_session, delete)

    def refresh_credential(self, owner_id: str, credential_id: str) -> OperationResponse:
        """Trade the stored refresh token for a new API token and reopen the database."""

        def refresh(session: Session) -> CredentialRead:
            credentials = CredentialService(session)
            credential = credentials.get(credential_id, owner_id)
            if not credential.refresh_token:
                raise validation_failed("refresh_token", None, "credential has no refresh token")
            database_id = credential.database_id

            grant = self.oauth.refresh_access_token(credential.refresh_token)
            resolved = self.resolver.resolve_database(grant.api_token, database_id=database_id)
            updated = credentials.update_tokens(credential_id, owner_id, grant, resolved)
            return CredentialRead.model_validate(updated)

        return self._run("refresh_credential", self._with_session, refresh)

    # ==================== EXPORT ====================

    def start_export(
        self,
        owner_id: str,
        credential_id: str,
        resource_type: Any,
        filters: Optional[Mapping[str, Any]] = None,
        mode: Any = ExportMode.FULL,
        format: Any = ExportFormat.CSV,
    ) -> OperationResponse:
        """Export records as CSV, XLSX, or JSON bytes."""

        def export(session: Session):
            credential = CredentialView.of(CredentialService(session).get(credential_id, owner_id))
            return self.exports.export(credential, resource_type, filters, mode, format)

        return self._run("start_export", self._with_session, export)

    # ==================== IMPORT ====================

    def parse_import_file(self, filename: str, content: bytes) -> OperationResponse:
        """Rows from an uploaded CSV, XLSX, or JSON file, ready for ``start_import``."""
        return self._run("parse_import_file", parse_import_file, filename, content)

    def start_import(
        self,
        owner_id: str,
        credential_id: str,
        resource_type: Any,
        rows: Sequence[Any],
    ) -> OperationResponse:
        """Validate the rows, record a job, and run it. Returns the job id."""

        def start(session: Session) -> str:
            credential = CredentialService(session).get(credential_id, owner_id)
            imports = ImportService(session, self.dispatcher, self.config.imports)
            job = imports.create_job(credential, resource_type, rows)
            job_id = job.id
            imports.run_job(job_id, owner_id)
            return job_id

        return self._run("start_import", self._with_session, start)

    def resume_import(self, owner_id: str, job_id: str) -> OperationResponse:
        """Run a job again; a partial job retries only its failed rows."""

        def resume(session: Session) -> JobRead:
            imports = ImportService(session, self.dispatcher, self.config.imports)
            imports.run_job(job_id, owner_id)
            return JobRead.model_validate(imports.jobs.get_job(job_id, owner_id))

        return self._run("resume_import", self._with_session, resume)

    def get_job_status(self, owner_id: str, job_id: str) -> OperationResponse:
        def status(session: Session) -> JobRead:
            return JobRead.model_validate(JobService(session).get_job(job_id, owner_id))

        return self._run("get_job_status", self._with_session, status)
