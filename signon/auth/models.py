from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class GoogleProfile(BaseModel):
    """Subset of Google's `oauth2/v2/userinfo` response we persist."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    email: str
    verified_email: bool = False
    name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    picture: Optional[str] = None
    locale: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def _email_required(cls, v: Any) -> str:
        email = "" if v is None else str(v).strip()
        if "@" not in email:
            raise ValueError("missing email")
        return email

    @field_validator("verified_email", mode="before")
    @classmethod
    def _verified_bool(cls, v: Any) -> bool:
        return v is True or str(v).strip().lower() == "true"

    @field_validator("id", mode="before")
    @classmethod
    def _id_str(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)


@dataclass(frozen=True)
class User:
    """User created on first Google login. Never updated afterwards."""

    id: str
    email: str
    verified_email: bool
    google_id: Optional[str] = None
    name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    picture: Optional[str] = None
    locale: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "google_id": self.google_id,
            "email": self.email,
            "verified_email": self.verified_email,
            "name": self.name,
            "given_name": self.given_name,
            "family_name": self.family_name,
            "picture": self.picture,
            "locale": self.locale,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class Session:
    """Server-side session; the browser only holds its signed id."""

    id: str
    user_id: str
    created_at: datetime

