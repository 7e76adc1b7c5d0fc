"""
Pydantic schemas for SetupDiff API.
"""
from typing import Optional
from pydantic import BaseModel, Field


# ============================================================
# INDEX SCHEMAS
# ============================================================

class IndexEntrySchema(BaseModel):
    segments: list[str]
    vehicle: Optional[str] = None
    track: Optional[str] = None
    name: str
    location: str
    modified_at: float


class SetupListResponse(BaseModel):
    prefix: list[str]
    count: int
    setups: list[IndexEntrySchema]


class ChildrenResponse(BaseModel):
    prefix: list[str]
    children: list[str]


class RescanResponse(BaseModel):
    root: str
    files_indexed: int


class IndexServiceStats(BaseModel):
    is_running: bool
    root: Optional[str] = None
    files_indexed: int = 0
    events_applied: int = 0
    parse_failures: int = 0
    rescans: int = 0
    pending_events: int = 0
    last_event: Optional[str] = None
    started_at: Optional[float] = None
    warnings: list[str] = []


# ============================================================
# COMPARISON SCHEMAS
# ============================================================

class CompareRequest(BaseModel):
    """Compare setups by location (as listed by /api/setups)."""
    paths: list[str] = Field(..., min_length=2)
    against_first: Optional[bool] = None


class ValueSchema(BaseModel):
    kind: str
    display: str
    magnitude: Optional[str] = None
    unit: Optional[str] = None


class DiffRowSchema(BaseModel):
    label: str
    path: list[str]
    values: list[Optional[ValueSchema]]
    display: list[str]
    classifications: list[Optional[str]]
    changed: bool


class DiffSectionSchema(BaseModel):
    name: str
    path: list[str]
    present_in: list[int]
    rows: list[DiffRowSchema]
    sections: list["DiffSectionSchema"]


class ComparedDocument(BaseModel):
    vehicle: str
    track: Optional[str] = None
    name: Optional[str] = None
    source: Optional[str] = None


class ParseFailure(BaseModel):
    source: str
    error: str
    detail: str


class ComparisonResponse(BaseModel):
    columns: list[str]
    against_first: bool
    is_identical: bool
    change_count: int
    summary: dict[str, int]
    documents: list[ComparedDocument]
    failures: list[ParseFailure]
    root: DiffSectionSchema
    report: Optional[str] = None


DiffSectionSchema.model_rebuild()
