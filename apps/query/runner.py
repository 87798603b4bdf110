"""
KNN query runner.

For every labeled query the runner looks up the query embedding, builds a
QuerySpec (k / num_candidates from settings) and asks the engine for the
nearest neighbours. One failing query never stops the others; the loop is
fanned out over a bounded thread pool and results come back in input order.
Ties keep whatever order the engine returns.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Mapping, Optional, Sequence

from elasticsearch import ApiError, Elasticsearch, TransportError
from pydantic import ValidationError

from apps.core.errors import KnnWorkflowError, QueryFailure, SchemaInvalid, VectorDimensionMismatch
from apps.core.es import body_of
from apps.core.logs import get_logger
from apps.core.metrics import c_queries, c_query_failed
from apps.core.settings import WorkflowSettings
from apps.ingest.models import EmbeddingRecord, IndexedDocument, SourceDocument
from .models import QueryOutcome, QuerySpec, SearchHit

logger = get_logger("knn.query")


def build_query(
    vector: Sequence[float],
    settings: WorkflowSettings,
    k: Optional[int] = None,
    num_candidates: Optional[int] = None,
    query_id: Optional[str] = None,
) -> QuerySpec:
    if len(vector) != settings.dimensions:
        raise VectorDimensionMismatch(query_id, settings.dimensions, len(vector))
    try:
        return QuerySpec(
            target_field=settings.vector_field,
            query_vector=list(vector),
            k=k if k is not None else settings.k,
            num_candidates=num_candidates if num_candidates is not None else settings.num_candidates,
        )
    except ValidationError as e:
        raise SchemaInvalid(query_id, e.errors()[0]["msg"]) from e


def run_query(
    es: Elasticsearch,
    index: str,
    spec: QuerySpec,
    request_timeout: float = 30.0,
    query_id: Optional[str] = None,
) -> List[SearchHit]:
    ident = query_id or index
    try:
        resp = body_of(
            es.options(request_timeout=request_timeout).search(index=index, knn=spec.to_knn(), size=spec.k)
        )
    except (ApiError, TransportError) as e:
        raise QueryFailure(ident, repr(e)) from e
    try:
        return [
            SearchHit(
                document_id=h["_id"],
                score=float(h["_score"]),
                source=IndexedDocument.model_validate(h.get("_source") or {}),
            )
            for h in resp["hits"]["hits"]
        ]
    except (KeyError, TypeError, ValidationError) as e:
        raise QueryFailure(ident, f"unexpected search response: {e!r}") from e


def _one(
    es: Elasticsearch,
    store: Mapping[str, EmbeddingRecord],
    query: SourceDocument,
    settings: WorkflowSettings,
    should_stop: Optional[Callable[[], bool]],
) -> QueryOutcome:
    if should_stop is not None and should_stop():
        return QueryOutcome(query_id=query.id, label=query.text, error="cancelled")
    c_queries.inc()
    try:
        embedding = store.get(query.id)
        if embedding is None:
            raise QueryFailure(query.id, "no embedding for query")
        spec = build_query(embedding.vector, settings, query_id=query.id)
        hits = run_query(
            es, settings.index_name, spec, request_timeout=settings.request_timeout, query_id=query.id
        )
    except KnnWorkflowError as e:
        c_query_failed.inc()
        logger.warning("query failed", extra={"query_id": query.id, "reason": str(e)})
        return QueryOutcome(query_id=query.id, label=query.text, error=str(e))
    logger.info("query done", extra={"query_id": query.id, "hits": len(hits)})
    return QueryOutcome(query_id=query.id, label=query.text, hits=hits)


def run_queries(
    es: Elasticsearch,
    store: Mapping[str, EmbeddingRecord],
    queries: Sequence[SourceDocument],
    settings: WorkflowSettings,
    should_stop: Optional[Callable[[], bool]] = None,
) -> List[QueryOutcome]:
    if not queries:
        return []
    workers = min(settings.query_workers, len(queries))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="knn-query") as pool:
        return list(pool.map(lambda q: _one(es, store, q, settings, should_stop), queries))


def render(outcome: QueryOutcome) -> str:
    lines = [f"query for vector of {outcome.label or outcome.query_id}:"]
    if not outcome.ok:
        lines.append(f"FAILED: {outcome.error}")
    elif not outcome.hits:
        lines.append("(no hits)")
    else:
        for hit in outcome.hits:
            lines.append(f"{hit.document_id} - {hit.score}: {hit.source.text}")
    lines.append("---")
    return "\n".join(lines)
