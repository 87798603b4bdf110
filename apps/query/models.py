# Query-side models. QuerySpec mirrors the knn clause of a search request;
# SearchHit and QueryOutcome are ephemeral results, never persisted.
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from apps.ingest.models import IndexedDocument


class QuerySpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_field: str = "vector"
    query_vector: List[float]
    k: int = Field(ge=1)
    num_candidates: int = Field(ge=1)

    @model_validator(mode="after")
    def _candidates_cover_k(self) -> "QuerySpec":
        if self.num_candidates < self.k:
            raise ValueError(f"num_candidates ({self.num_candidates}) must be >= k ({self.k})")
        return self

    def to_knn(self) -> Dict[str, Any]:
        return {
            "field": self.target_field,
            "query_vector": self.query_vector,
            "k": self.k,
            "num_candidates": self.num_candidates,
        }


class SearchHit(BaseModel):
    document_id: str
    score: float
    source: IndexedDocument


class QueryOutcome(BaseModel):
    query_id: str
    label: str = ""
    hits: Optional[List[SearchHit]] = None    # [] means no hits, None means failed
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
