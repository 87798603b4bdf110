from typing import Dict, List, Optional, Any
from pydantic import BaseModel, Field


class KnnSearchRequest(BaseModel):
    vector: List[float] = Field(min_length=1)
    k: Optional[int] = None               # defaults to KNN_K
    num_candidates: Optional[int] = None  # defaults to KNN_NUM_CANDIDATES


class KnnHit(BaseModel):
    id: str
    score: float
    text: str


class KnnSearchResponse(BaseModel):
    index: str
    k: int
    num_candidates: int
    hits: List[KnnHit] = Field(default_factory=list)


class HealthResponse(BaseModel):
    ok: bool
    index: str
    info: Dict[str, Any] = Field(default_factory=dict)
