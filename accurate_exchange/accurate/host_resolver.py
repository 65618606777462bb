"""
Database host discovery.

An API token can open one or more Accurate databases. Discovery lists them,
picks the default (or the first), and opens it to obtain the regional host
and the session id that signed calls must carry.
"""

from typing import Any, List, Optional
from urllib.parse import urlsplit

from pydantic import ValidationError as PydanticValidationError

from ..constants import AccurateEndpoint
from ..context import operation
from ..exceptions import BaseError, HostResolutionError, RequestError
from ..schemas import DatabaseEntry, OpenDbResponse, ResolvedDatabase
from ..utils.logger import get_logger
from .dispatcher import ApiRequest, ApiResponse, Dispatcher, extract_messages


def normalize_host(raw: str) -> str:
    """Strip scheme, path, and trailing slashes: ``https://x.accurate.id/`` -> ``x.accurate.id``."""
    value = (raw or "").strip()
    if "://" in value:
        value = urlsplit(value).netloc
    return value.split("/", 1)[0].strip()


def select_database(entries: List[DatabaseEntry]) -> DatabaseEntry:
    """The entry flagged default, otherwise the first one."""
    for entry in entries:
        if entry.is_default:
            return entry
    return entries[0]


class HostResolver:
    """Resolves the database host and session for an API token."""

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher
        self.logger = get_logger()

    def _call(self, api_token: str, request: ApiRequest, step: str) -> Any:
        try:
            response: ApiResponse = self.dispatcher.dispatch_unsigned(api_token, request)
        except RequestError as e:
            if e.status in (401, 403):
                raise HostResolutionError(
                    "Accurate token is invalid or expired", body=e.body, step=step, cause=e
                )
            raise HostResolutionError(
                f"Accurate {step} failed ({e.status})", body=e.body, step=step, cause=e
            )

        try:
            data = response.json()
        except BaseError as e:
            raise HostResolutionError(
                f"Accurate {step} returned a malformed body", body=response.text[:2000], cause=e
            )
        if not isinstance(data, dict):
            raise HostResolutionError(f"Accurate {step} returned a malformed body", body=response.text[:2000])
        if data.get("s") is False:
            raise HostResolutionError(
                f"Accurate {step} failed: {'; '.join(extract_messages(data))}",
                body=response.text[:2000],
                step=step,
            )
        return data

    def list_databases(self, api_token: str) -> List[DatabaseEntry]:
        data = self._call(
            api_token, ApiRequest(method="GET", path=AccurateEndpoint.DB_LIST.value), "db-list"
        )
        raw = data.get("d")
        if not isinstance(raw, list) or not raw:
            raise HostResolutionError("No databases found in Accurate account", body=str(raw)[:2000])
        try:
            return [DatabaseEntry.model_validate(item) for item in raw]
        except PydanticValidationError as e:
            raise HostResolutionError("Malformed database list", body=str(raw)[:2000], cause=e)

    def open_database(self, api_token: str, database_id: Any) -> ResolvedDatabase:
        data = self._call(
            api_token,
            ApiRequest(
                method="GET", path=AccurateEndpoint.OPEN_DB.value, params={"id": str(database_id)}
            ),
            "open-db",
        )
        opened = OpenDbResponse.model_validate(data)
        host = normalize_host(opened.host or "")
        if not host or not opened.session:
            raise HostResolutionError(
                "Missing host or session in open-db response", body=str(data)[:2000]
            )
        return ResolvedDatabase(host=host, session=opened.session, database_id=str(database_id))

    @operation(name="host_resolver.resolve_database")
    def resolve_database(self, api_token: str, database_id: Optional[str] = None) -> ResolvedDatabase:
        """
        Discover and open the token's database.

        Args:
            api_token: OAuth access token
            database_id: Reopen this database instead of selecting one

        Raises:
            HostResolutionError: If the token is rejected or no usable database exists
        """
        if database_id is None:
            database_id = select_database(self.list_databases(api_token)).id

        resolved = self.open_database(api_token, database_id)
        self.logger.info(
            "Resolved Accurate database",
            extra={"host": resolved.host, "database_id": resolved.database_id},
        )
        return resolved

    def resolve_host(self, api_token: str) -> str:
        """Plain host name (no scheme or path) of the token's database."""
        return self.resolve_database(api_token).host
