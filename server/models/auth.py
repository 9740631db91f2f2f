"""Acting user snapshot used for audit identity blocks."""

from typing import Optional
from pydantic import BaseModel, Field


class User(BaseModel):
    """User as seen by the event pipeline (no credentials, no persistence)."""
    model_config = {"populate_by_name": True, "extra": "ignore"}

    id: str
    email: str = ""
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    global_role: Optional[str] = Field(default=None, alias="globalRole")
