from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Literal, Optional


class RouteIn(BaseModel):
    source: str
    dest: str

    @field_validator("source", "dest")
    @classmethod
    def airport_code(cls, value: str) -> str:
        value = value.strip().upper()
        if len(value) != 3 or not value.isalpha():
            raise ValueError("Airport codes are three letters")
        return value


class TriggerRequest(BaseModel):
    action: str
    url: Optional[str] = None
    routes: Optional[List[RouteIn]] = None
    date_offsets: Optional[List[int]] = None
    trip_kind: Literal["one_way", "round_trip"] = "one_way"

    @field_validator("date_offsets")
    @classmethod
    def non_negative_offsets(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is not None and any(offset < 0 for offset in value):
            raise ValueError("Date offsets cannot be negative")
        return value


class TriggerResponse(BaseModel):
    success: bool
    data: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    total_combinations: Optional[int] = None
    error: Optional[str] = None


class ProgressResponse(BaseModel):
    completed: int
    total: int
    current_label: str = ""
    finished: bool = False
    percent: int = 0
    timestamp: Optional[str] = None


class BatchStateResponse(BaseModel):
    batch_id: str
    created_at: str
    current_index: int
    total: int
    jobs: List[Dict[str, Any]] = Field(default_factory=list)
