"""
Pydantic models for the authentication flows.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..common.models import Document, ObjectIdStr


class User(Document):
    """Stored user record. `password` is always a bcrypt hash."""

    email: str
    password: str
    name: Optional[str] = None


class PublicUser(BaseModel):
    """
    User as returned to callers.

    Declares only non-secret fields and ignores everything else, so a
    password hash cannot leak through it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: ObjectIdStr = Field(alias="_id")
    email: str
    name: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls(id=user.id, email=user.email, name=user.name)


class Credentials(BaseModel):
    """Login request. Never persisted."""

    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, description="Plaintext password")


class NewUser(BaseModel):
    """Registration request."""

    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1, description="Plaintext password")
    name: Optional[str] = None


class TokenPayload(BaseModel):
    """Claims carried by a session token: the subject and its validity window."""

    sub: str = Field(..., description="User id the token is bound to")
    iat: int
    exp: int


class AuthResult(BaseModel):
    """Response of login and registration."""

    access_token: str
    token_type: str = "bearer"
    user: PublicUser
