"""
Shared Pydantic models for the data-access layer.

Documents travel as plain dicts between the repository and the store
(the MongoDB wire shape, `_id` and camelCase system fields) and as
Pydantic models between the repository and its callers.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import InvalidIdentifier

# ObjectIds leave the repository as their 24-char hex form
ObjectIdStr = Annotated[str, BeforeValidator(lambda v: str(v) if isinstance(v, ObjectId) else v)]


def to_object_id(value: Union[str, ObjectId]) -> ObjectId:
    """
    Convert a caller-supplied identifier into an ObjectId.

    Raises:
        InvalidIdentifier: If the value is not a valid ObjectId
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as e:
        raise InvalidIdentifier(f"Invalid document identifier: {value!r}") from e


class Document(BaseModel):
    """
    A persisted record plus its system fields.

    Subclasses declare the record shape; unknown fields (e.g. joined in by
    lookup stages) are kept.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[ObjectIdStr] = Field(default=None, alias="_id")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    deleted_at: Optional[datetime] = Field(default=None, alias="deletedAt")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the stored shape, omitting an unassigned `_id`."""
        data = self.model_dump(by_alias=True)
        if data.get("_id") is None:
            data.pop("_id", None)
        else:
            data["_id"] = to_object_id(data["_id"])
        return data


T = TypeVar("T", bound=Document)


class Paginate(BaseModel):
    """Page request. Values may arrive as numeric strings from a query string."""

    page: Optional[int] = None
    limit: Optional[int] = None


class SortSpec(BaseModel):
    """Caller-specified ordering for filtered pagination."""

    model_config = ConfigDict(populate_by_name=True)

    sort_by: Optional[str] = Field(default=None, alias="sortBy")
    sort_order: Optional[Union[int, str]] = Field(default=None, alias="sortOrder")


class PageDescriptor(BaseModel):
    """Derived pagination metadata. Never persisted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_index: int
    total_page: int
    current_page: int
    next_page: Optional[int] = None
    previous_page: Optional[int] = None
    starting_index: int
    ending_index: int
    items_on_current_page: int
    limit: int
    sort_by: str
    sort_order: int


class PaginatedResult(BaseModel, Generic[T]):
    """One page of documents; `page` is None when nothing matched."""

    page: Optional[PageDescriptor] = None
    data: List[T] = Field(default_factory=list)
