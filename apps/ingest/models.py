# Shared document schema (pydantic).
# The loader, the bulk loader and the query runner all exchange these frozen
# models; nothing mutates them after load.
import math
from typing import List

from pydantic import BaseModel, ConfigDict, field_validator


class EmbeddingRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    vector: List[float]

    @field_validator("vector")
    @classmethod
    def _finite(cls, v: List[float]) -> List[float]:
        if not v:
            raise ValueError("embedding is empty")
        if not all(math.isfinite(x) for x in v):
            raise ValueError("embedding contains non-finite values")
        return v

    @property
    def dimensions(self) -> int:
        return len(self.vector)


class SourceDocument(BaseModel):
    # raw content; gets its vector only when joined on id
    model_config = ConfigDict(frozen=True)

    id: str
    text: str


class IndexedDocument(BaseModel):
    # the unit persisted to the index (also what comes back in _source)
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    vector: List[float]

    @classmethod
    def join(cls, doc: SourceDocument, embedding: EmbeddingRecord) -> "IndexedDocument":
        return cls(id=doc.id, text=doc.text, vector=embedding.vector)
