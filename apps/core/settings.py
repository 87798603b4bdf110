# Runtime config via env, folded into one validated settings object that the
# pipeline, the query runner and the API pass around by value.
import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from apps.indexer.mappings import DEFAULT_MAX_DIMS, Similarity


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class WorkflowSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    es_url: str = "http://localhost:9200"
    index_name: str = "knn-test"
    vector_field: str = "vector"

    dimensions: int = 1024
    max_dimensions: int = DEFAULT_MAX_DIMS
    similarity: Similarity = Similarity.COSINE

    k: int = Field(default=3, ge=1)
    num_candidates: int = Field(default=3, ge=1)

    query_workers: int = Field(default=4, ge=1)
    request_timeout: float = Field(default=30.0, gt=0)
    refresh: bool = False    # force refresh=wait_for on the bulk request
    recreate: bool = True    # delete any index of the same name first

    shards: int = Field(default=1, ge=1)
    replicas: int = Field(default=0, ge=0)
    metrics_port: Optional[int] = None

    @model_validator(mode="after")
    def _check(self) -> "WorkflowSettings":
        if self.num_candidates < self.k:
            raise ValueError(f"num_candidates ({self.num_candidates}) must be >= k ({self.k})")
        if not 1 <= self.dimensions <= self.max_dimensions:
            raise ValueError(f"dimensions must be in [1, {self.max_dimensions}], got {self.dimensions}")
        return self

    @classmethod
    def from_env(cls, **overrides) -> "WorkflowSettings":
        metrics_port = os.getenv("METRICS_PORT")
        values = dict(
            es_url=os.getenv("ELASTIC_URL", "http://localhost:9200"),
            index_name=os.getenv("KNN_INDEX", "knn-test"),
            dimensions=int(os.getenv("KNN_DIMENSIONS", "1024")),
            max_dimensions=int(os.getenv("KNN_MAX_DIMENSIONS", str(DEFAULT_MAX_DIMS))),
            similarity=os.getenv("KNN_SIMILARITY", Similarity.COSINE.value),
            k=int(os.getenv("KNN_K", "3")),
            num_candidates=int(os.getenv("KNN_NUM_CANDIDATES", "3")),
            query_workers=int(os.getenv("KNN_QUERY_WORKERS", "4")),
            request_timeout=float(os.getenv("ES_REQUEST_TIMEOUT", "30")),
            refresh=_flag("KNN_REFRESH"),
            recreate=_flag("KNN_RECREATE", "1"),
            shards=int(os.getenv("ES_SHARDS", "1")),
            replicas=int(os.getenv("ES_REPLICAS", "0")),
            metrics_port=int(metrics_port) if metrics_port else None,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
