# storefront/core/identity.py
import uuid
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class UserIdentity(BaseModel):
    """Cart owner identified by an authenticated user id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["user"] = "user"
    user_id: uuid.UUID


class SessionIdentity(BaseModel):
    """Anonymous cart owner identified by a guest session token."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["session"] = "session"
    session_id: str = Field(min_length=1, max_length=128)


CartIdentity = Union[UserIdentity, SessionIdentity]
