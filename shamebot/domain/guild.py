"""Guild domain model."""

from pydantic import BaseModel, Field


class Guild(BaseModel):
    """A Discord guild that receives task notices."""

    id: str = Field(..., description="Guild ID (Discord snowflake)")
    name: str = Field(..., description="Guild name")
    send_to: str | None = Field(default=None, description="Channel that receives guild-wide notices")
