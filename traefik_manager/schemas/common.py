from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResourceRef(WireModel):
    """Reference to another resource, accepted as ``"id"`` or ``{"id": "id"}``."""

    id: str = ""

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_id(cls, data: Any) -> Any:
        if data is None:
            return {"id": ""}
        if isinstance(data, str):
            return {"id": data}
        return data

    def __bool__(self) -> bool:
        return bool(self.id)


class ResourceResponse(BaseModel):
    id: str
    created: bool = False
    updated: bool = False
    deleted: bool = False


def _none_to_list(value: Any) -> Any:
    return [] if value is None else value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _duration_text(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    return value


# Lists that clients may send as null.
NullableList = BeforeValidator(_none_to_list)
# Strings where "" means unset.
OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]
# Durations such as "10s"; numbers are kept as their string form.
Duration = Annotated[str | None, BeforeValidator(_duration_text)]
