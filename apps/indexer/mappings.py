# Index schema for the knn documents: keyword id, full-text text and a
# dense_vector field. Built once, validated at construction, then rendered to
# the body expected by indices.create.
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from apps.core.errors import SchemaInvalid

# dense_vector limit in the default engine profile
DEFAULT_MAX_DIMS = 1024


class Similarity(str, Enum):
    COSINE = "cosine"
    DOT_PRODUCT = "dot_product"
    L2_NORM = "l2_norm"


class DenseVectorField(BaseModel):
    model_config = ConfigDict(frozen=True)

    dimensions: int
    indexed: bool = True
    similarity: Similarity = Similarity.COSINE

    def mapping(self) -> Dict[str, Any]:
        return {
            "type": "dense_vector",
            "dims": self.dimensions,
            "index": self.indexed,
            "similarity": self.similarity.value,
        }


class IndexSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    id_field: str = "id"
    text_field: str = "text"
    vector_field: str = "vector"
    vector: DenseVectorField
    max_dimensions: int = DEFAULT_MAX_DIMS

    @model_validator(mode="after")
    def _dims_in_range(self) -> "IndexSchema":
        dims = self.vector.dimensions
        if not 1 <= dims <= self.max_dimensions:
            raise ValueError(f"dimensions must be in [1, {self.max_dimensions}], got {dims}")
        return self

    @classmethod
    def build(
        cls,
        dimensions: int,
        similarity: Any = Similarity.COSINE,
        indexed: bool = True,
        max_dimensions: int = DEFAULT_MAX_DIMS,
        vector_field: str = "vector",
    ) -> "IndexSchema":
        """Validate and build a schema; any violation surfaces as SchemaInvalid."""
        try:
            return cls(
                vector=DenseVectorField(dimensions=dimensions, indexed=indexed, similarity=similarity),
                max_dimensions=max_dimensions,
                vector_field=vector_field,
            )
        except ValidationError as e:
            err = e.errors()[0]
            where = ".".join(str(p) for p in err.get("loc", ())) or "schema"
            raise SchemaInvalid(where, err["msg"]) from e

    @property
    def dimensions(self) -> int:
        return self.vector.dimensions

    def mappings(self) -> Dict[str, Any]:
        return {
            "dynamic": False,
            "properties": {
                self.id_field: {"type": "keyword"},
                self.text_field: {"type": "text"},
                self.vector_field: self.vector.mapping(),
            },
        }


def index_body(schema: IndexSchema, shards: int = 1, replicas: int = 0) -> Dict[str, Any]:
    """Keyword arguments for ``indices.create``."""
    return {
        "settings": {
            "number_of_shards": shards,
            "number_of_replicas": replicas,
        },
        "mappings": schema.mappings(),
    }
