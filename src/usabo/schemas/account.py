"""Pydantic schemas for accounts and the auth endpoints.

Learn: Request bodies keep every field optional so that a missing field
reaches the identity resolver and gets the same friendly 400 message the
front-end already knows, rather than a framework validation dump.
Response models list public fields only; password_hash is never here.
"""

import uuid
from typing import Optional

from pydantic import BaseModel


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    password: Optional[str] = None


class AccountSummary(BaseModel):
    """The account as returned alongside a token."""
    id: uuid.UUID
    name: str
    email: str

    model_config = {"from_attributes": True}


class AccountRead(AccountSummary):
    """The account as returned by /me."""
    avatar: Optional[str] = None
    provider: str


class AuthResponse(BaseModel):
    message: str
    token: str
    user: AccountSummary


class ProvidersStatus(BaseModel):
    google: bool
    github: bool
