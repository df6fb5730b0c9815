"""Request and response bodies for the HTTP control plane."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PathBody(BaseModel):
    path: str = Field(..., description="Slash-delimited room or category path")


class IndexBody(BaseModel):
    index: int = Field(..., description="Zero-based position in the message log")


class AnonymousBody(BaseModel):
    anonymous: bool = False


class CharacterLimitBody(BaseModel):
    characterLimit: int = Field(..., ge=0, description="0 disables the limit")


class ClientIdBody(BaseModel):
    clientId: str


class IpBody(BaseModel):
    ip: str


class CommandResponse(BaseModel):
    success: bool
    message: str


class ClientInfo(BaseModel):
    clientId: str
    ip: str | None = None
    username: str
