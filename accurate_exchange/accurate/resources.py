"""
Registry of Accurate resource types supported for bulk export and import.

A resource adapter knows how to page through the provider's list endpoint,
expand each entry into flat rows, and submit validated rows as records. The
export and import engines only talk to this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Type

from pydantic import BaseModel

from ..constants import ResourceType
from ..exceptions import validation_failed
from .dispatcher import Dispatcher, SigningCredential


class ResourceAdapter(ABC):
    """Provider operations for one resource type."""

    resource_type: ResourceType
    columns: Sequence[str] = ()
    row_model: Type[BaseModel]

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    @abstractmethod
    def list_page(
        self,
        credential: SigningCredential,
        page: int,
        page_size: int,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[Any]:
        """One page of summaries, in provider order."""

    @abstractmethod
    def expand(self, credential: SigningCredential, summary: Any) -> List[Dict[str, Any]]:
        """Flat, column-keyed rows for one summary."""

    def check_filters(self, filters: Mapping[str, Any]) -> None:
        """Raise ValidationError for filters the list endpoint cannot accept."""

    def parse_row(self, raw: Mapping[str, Any]) -> BaseModel:
        """
        Validate the shape of one source row.

        Raises:
            pydantic.ValidationError: If a field is missing or malformed
        """
        return self.row_model.model_validate(dict(raw))

    @abstractmethod
    def lookup_item(self, credential: SigningCredential, code: str) -> Optional[Any]:
        """The provider's record for a referenced item code, or None."""

    def group_key(self, row: Any) -> Optional[Hashable]:
        """
        Rows sharing a key are lines of one provider record.

        None keeps the row as a record of its own.
        """
        return None

    def detach(self, row: Any) -> Any:
        """Copy of a row that no longer claims its group key."""
        return row

    @abstractmethod
    def save(self, credential: SigningCredential, rows: Sequence[Any]) -> Any:
        """
        Create one record from one or more rows of the same group.

        Raises:
            RecordRejectedError: If the provider rejects the record
        """


_registry: Dict[ResourceType, Type[ResourceAdapter]] = {}


def register_resource(adapter_cls: Type[ResourceAdapter]) -> Type[ResourceAdapter]:
    """Class decorator adding an adapter to the registry."""
    _registry[adapter_cls.resource_type] = adapter_cls
    return adapter_cls


def resolve_resource_type(value: Any) -> ResourceType:
    try:
        resource_type = ResourceType(value)
    except ValueError:
        raise validation_failed("resource_type", value, "unsupported resource type")
    if resource_type not in _registry:
        raise validation_failed("resource_type", value, "no adapter registered")
    return resource_type


def get_resource(resource_type: Any, dispatcher: Dispatcher) -> ResourceAdapter:
    """
    Instantiate the adapter for a resource type.

    Raises:
        ValidationError: If the resource type is unknown
    """
    return _registry[resolve_resource_type(resource_type)](dispatcher)


def registered_resources() -> List[ResourceType]:
    return list(_registry)
