"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel

from rpg_chronicle.storage import DEFAULT_SLOT


class ActionBody(BaseModel):
    action: str


class UseItemBody(BaseModel):
    verb: str
    item: str


class SlotBody(BaseModel):
    slot: str = DEFAULT_SLOT


class GameMasterBody(BaseModel):
    message: str


class DescribeItemBody(BaseModel):
    item: str
