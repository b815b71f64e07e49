from __future__ import annotations

"""Pydantic models for the camera API."""

from typing import Optional

from pydantic import BaseModel, StrictBool, field_validator


class CameraCreate(BaseModel):
    """Payload for adding a camera."""

    name: str = ""
    rtspUrl: str = ""
    active: bool = True

    @field_validator("name", "rtspUrl")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class CameraUpdate(BaseModel):
    """Payload for editing a camera; a missing ``active`` keeps the current state."""

    name: str = ""
    rtspUrl: str = ""
    active: Optional[StrictBool] = None

    @field_validator("name", "rtspUrl")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


class CameraActiveUpdate(BaseModel):
    active: Optional[StrictBool] = None


class DisplayNameUpdate(BaseModel):
    displayName: Optional[str] = None


__all__ = ["CameraCreate", "CameraUpdate", "CameraActiveUpdate", "DisplayNameUpdate"]
