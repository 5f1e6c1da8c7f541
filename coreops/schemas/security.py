from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class GrantOut(ApiModel):
    role_name: str
    scope: str
    division_id: str | None
    permission_code: str


class MeOut(ApiModel):
    id: int
    username: str
    email: str
    roles: list[str]
    permissions: list[str]
    universal: bool
    grants: list[GrantOut]
