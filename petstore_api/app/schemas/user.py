"""
Pydantic models for users.

Users are stored as open JSON objects indexed by ``username``.  The
``password`` field is hashed by ``UserService`` before it reaches the
store and is never returned by the API.
"""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[int, str]] = Field(None, examples=[10])
    username: Optional[str] = Field(None, examples=["theUser"])
    firstName: Optional[str] = Field(None, examples=["John"])
    lastName: Optional[str] = Field(None, examples=["James"])
    email: Optional[str] = Field(None, examples=["john@email.com"])
    password: Optional[str] = Field(None, examples=["12345"])
    phone: Optional[str] = Field(None, examples=["12345"])
    userStatus: Optional[int] = Field(None, description="User Status", examples=[1])

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class UserLogin(BaseModel):
    """Credentials posted to ``/user/login``."""

    username: str
    password: str


class LoginResult(BaseModel):
    access_token: str
    token_type: str = "bearer"
