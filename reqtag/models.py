"""reqtag models - persisted entity shapes and boundary validation.

Entities are pydantic models. Stored rows use camelCase keys
(``selectedEnvironmentId``, ``queryParams``), Python code uses the
snake_case field names; both are accepted on input.
"""

from __future__ import annotations

from typing import Any, ClassVar, Literal, TypeVar, get_args

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]
TagColor = Literal["blue", "red", "green", "purple", "yellow", "pink"]

METHODS = get_args(HttpMethod)
BODYLESS_METHODS = ("GET", "HEAD", "OPTIONS")
TAG_COLORS = get_args(TagColor)

StringMap = dict[StrictStr, StrictStr]

E = TypeVar("E", bound=BaseModel)


class ReqtagError(Exception):
    """Base class for reqtag errors."""


class ValidationError(ReqtagError, ValueError):
    """Raised when an entity field does not match its schema."""


class NotFoundError(ReqtagError, KeyError):
    """Raised when an id does not exist in the store."""

    def __init__(self, kind: str, ident: str):
        super().__init__(f"{kind} '{ident}' not found")
        self.kind = kind
        self.ident = ident

    def __str__(self) -> str:
        return self.args[0]


class Entity(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def _location(loc: tuple) -> str:
    """('headers', 'X-Count') -> 'headers[X-Count]'"""
    if not loc:
        return "value"
    head, *rest = loc
    return str(head) + "".join(f"[{part}]" for part in rest)


def parse_entity(model: type[E], data: Any, label: str | None = None) -> E:
    """Validate data as model, raising reqtag's ValidationError on failure."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        problems = "; ".join(f"{_location(err['loc'])}: {err['msg']}" for err in e.errors())
        label = label or getattr(model, "entity_label", model.__name__.lower())
        raise ValidationError(f"Invalid {label}: {problems}") from e


class Project(Entity):
    id: str
    name: str = Field(min_length=1)
    selected_environment_id: str | None = None
    created_at: int = 0
    updated_at: int = 0


class RequestDefinition(Entity):
    entity_label: ClassVar[str] = "request"

    id: str
    project_id: str
    name: str = Field(min_length=1)
    method: HttpMethod = "GET"
    url: StrictStr = ""
    headers: StringMap = {}
    query_params: StringMap = {}
    body: StrictStr | None = None
    tag_ids: list[StrictStr] = []
    created_at: int = 0
    updated_at: int = 0

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("headers", "query_params", "tag_ids", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any, info) -> Any:
        if value is None:
            return [] if info.field_name == "tag_ids" else {}
        return value


class Tag(Entity):
    id: str
    name: str = Field(min_length=1)
    color: TagColor = "blue"
    icon: StrictStr | None = None
    description: StrictStr | None = None
    headers: StringMap = {}
    query_params: StringMap = {}
    created_at: int = 0
    updated_at: int = 0

    @field_validator("headers", "query_params", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class Environment(Entity):
    id: str
    project_id: str
    name: str = Field(min_length=1)
    variables: StringMap = {}
    created_at: int = 0
    updated_at: int = 0

    @field_validator("variables", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class HistoryEntry(Entity):
    """Immutable record of one execution attempt."""

    model_config = ConfigDict(frozen=True)
    entity_label: ClassVar[str] = "history entry"

    id: str
    project_id: str
    request_id: str
    method: str
    url: str
    resolved_url: str
    resolved_headers: StringMap = {}
    resolved_query_params: StringMap = {}
    duration: int = 0
    timestamp: int = 0
    created_at: int = 0
    environment_id: str | None = None
    resolved_body: str | None = None
    status: int | None = None
    status_text: str | None = None
    response_headers: StringMap | None = None
    response_body: str | None = None
    error: str | None = None


class Share(Entity):
    id: str
    project_id: str
    history_id: str
    share_token: str
    is_public: bool = False
    created_at: int = 0
