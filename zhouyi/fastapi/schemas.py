from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, Field


class CastInput(BaseModel):
    lines: Optional[List[Union[str, int]]] = Field(
        None, description="六爻（自下而上），支持枚举名或 6/7/8/9；为空则掷钱生成"
    )


class HexagramOut(BaseModel):
    code: str
    index: int
    name: str
    judgment: str
    explanation: str


class YaoOut(BaseModel):
    name: str
    value: int
    moving: bool


class CastResponse(BaseModel):
    found: bool
    code: str
    lines: List[YaoOut]
    moving: List[int]
    changed_code: str
    hexagram: Optional[HexagramOut] = None
    changed: Optional[HexagramOut] = None


class SessionOut(BaseModel):
    session_id: str
    phase: str
    line_index: int
    lines: List[int]
    in_progress: bool
    code: Optional[str] = None
    moving: List[int] = []
    hexagram: Optional[HexagramOut] = None


class StartResponse(BaseModel):
    started: bool
    session: SessionOut
