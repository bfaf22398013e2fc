from uuid import UUID

from pydantic import BaseModel, ConfigDict

from shared.constants import Role


class CurrentUser(BaseModel):
    """User context from JWT; cached per request or per realtime connection."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: UUID
    email: str
    name: str = ""
    role: Role = Role.STUDENT
