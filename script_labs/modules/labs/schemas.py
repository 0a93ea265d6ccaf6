from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from script_labs.core.validation import check_text, field_error
from script_labs.modules.labs.models import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH

SEARCH_MAX_LENGTH = 255
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

SORT_FIELDS = ("title", "description", "created_at", "updated_at")
SORT_ORDERS = ("asc", "desc")


class LabCreate(BaseModel):
    title: str
    description: str

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, value: Any) -> str:
        return check_text(value, "Title", TITLE_MAX_LENGTH)

    @field_validator("description", mode="before")
    @classmethod
    def check_description(cls, value: Any) -> str:
        return check_text(value, "Description", DESCRIPTION_MAX_LENGTH)


def _check_update_text(value: Any, name: str, max_length: int) -> str:
    if not isinstance(value, str):
        raise field_error("string_type", f'"{name}" must be a string')
    value = value.strip()
    if not value:
        raise field_error("string_empty", f'"{name}" is not allowed to be empty')
    if len(value) > max_length:
        raise field_error(
            "string_max",
            f'"{name}" length must be less than or equal to {max_length} characters long',
        )
    return value


class LabUpdate(BaseModel):
    """Partial update; at least one field, unknown keys are dropped."""

    title: Optional[str] = None
    description: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def check_title(cls, value: Any) -> str:
        return _check_update_text(value, "title", TITLE_MAX_LENGTH)

    @field_validator("description", mode="before")
    @classmethod
    def check_description(cls, value: Any) -> str:
        return _check_update_text(value, "description", DESCRIPTION_MAX_LENGTH)

    @model_validator(mode="after")
    def check_not_empty(self) -> "LabUpdate":
        if not self.model_fields_set:
            raise field_error("object_min", '"value" must have at least 1 key')
        return self


class LabIdParam(BaseModel):
    id: int

    @field_validator("id", mode="before")
    @classmethod
    def check_id(cls, value: Any) -> int:
        if isinstance(value, bool):
            raise field_error("number_base", "ID must be a number")
        # Decimal keeps ids beyond float precision exact
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise field_error("number_base", "ID must be a number")
        if not number.is_finite():
            raise field_error("number_base", "ID must be a number")
        if number != number.to_integral_value():
            raise field_error("number_integer", "ID must be an integer")
        if number <= 0:
            raise field_error("number_positive", "ID must be a positive number")
        return int(number)


def _parse_int(value: Any, name: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise field_error("number_base", f'"{name}" must be a number')


def _check_search(value: Any, name: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise field_error("string_type", f'"{name}" must be a string')
    if len(value) > SEARCH_MAX_LENGTH:
        raise field_error(
            "string_max",
            f'"{name}" length must be less than or equal to {SEARCH_MAX_LENGTH} characters long',
        )
    return value


class LabListQuery(BaseModel):
    """Query string of the list and search routes.

    ``page`` and ``limit`` must be integers; out-of-range values are clamped
    rather than rejected (``limit`` to 1..100, ``page`` to at least 1).
    """

    model_config = ConfigDict(populate_by_name=True)

    search: Optional[str] = None
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    sort_by: str = Field(default="created_at", alias="sortBy")
    sort_order: str = Field(default="desc", alias="sortOrder")

    @field_validator("search", mode="before")
    @classmethod
    def check_search(cls, value: Any) -> Optional[str]:
        return _check_search(value, "search")

    @field_validator("page", mode="before")
    @classmethod
    def clamp_page(cls, value: Any) -> int:
        return max(1, _parse_int(value, "page"))

    @field_validator("limit", mode="before")
    @classmethod
    def clamp_limit(cls, value: Any) -> int:
        return min(MAX_PAGE_SIZE, max(1, _parse_int(value, "limit")))

    @field_validator("sort_by", mode="before")
    @classmethod
    def check_sort_by(cls, value: Any) -> str:
        if value not in SORT_FIELDS:
            raise field_error("any_only", f'"sortBy" must be one of [{", ".join(SORT_FIELDS)}]')
        return value

    @field_validator("sort_order", mode="before")
    @classmethod
    def check_sort_order(cls, value: Any) -> str:
        if isinstance(value, str):
            value = value.lower()
        if value not in SORT_ORDERS:
            raise field_error("any_only", f'"sortOrder" must be one of [{", ".join(SORT_ORDERS)}]')
        return value

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class LabSearchQuery(LabListQuery):
    """Search route variant; the term arrives as ``q``."""

    search: Optional[str] = Field(default=None, alias="q")

    @field_validator("search", mode="before")
    @classmethod
    def check_search(cls, value: Any) -> Optional[str]:
        return _check_search(value, "q")


class LabResponse(BaseModel):
    id: int
    title: str
    description: str
    user_id: Union[str, int]
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class LabListResponse(BaseModel):
    success: bool
    data: List[LabResponse]
    pagination: Pagination
    timestamp: str


class LabSearchResponse(LabListResponse):
    search_query: str


class LabDetailResponse(BaseModel):
    success: bool
    data: LabResponse
    timestamp: str


class LabMutationResponse(LabDetailResponse):
    message: str


class LabIdData(BaseModel):
    id: int


class LabDeleteResponse(BaseModel):
    success: bool
    message: str
    data: LabIdData
    timestamp: str
