from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


Role = Literal["admin", "client"]


class Identity(BaseModel):
    """
    Who is calling, derived once per request from already-verified claims.
    Immutable for the lifetime of the request.
    """
    model_config = ConfigDict(frozen=True)

    subjectId: str = Field(min_length=1)
    role: Role
    groups: tuple[str, ...] = ()

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
