"""
Bulk loader: join source documents with their embeddings and submit them as a
single bulk request of ``create`` operations.

The join runs to completion before anything is sent, so a missing embedding
aborts the batch with nothing indexed. Any rejected item fails the load.
Visibility of the new documents follows the index refresh interval unless
``refresh`` is requested.
"""
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from elasticsearch import ApiError, Elasticsearch, TransportError

from apps.core.errors import BulkItemFailure, MissingEmbedding
from apps.core.es import body_of
from apps.core.logs import get_logger
from apps.core.metrics import c_bulk_failed, c_indexed
from apps.ingest.models import EmbeddingRecord, IndexedDocument, SourceDocument

logger = get_logger("knn.indexer")


def join_documents(
    docs: Iterable[SourceDocument], store: Mapping[str, EmbeddingRecord]
) -> List[IndexedDocument]:
    joined: List[IndexedDocument] = []
    for doc in docs:
        embedding = store.get(doc.id)
        if embedding is None:
            raise MissingEmbedding(doc.id)
        joined.append(IndexedDocument.join(doc, embedding))
    return joined


def transform(doc: IndexedDocument) -> Dict[str, Any]:
    """The _source stored for a document."""
    return doc.model_dump(mode="json")


def to_bulk_actions(docs: Sequence[IndexedDocument]) -> List[Dict[str, Any]]:
    # bulk body alternates action line / source line
    ops: List[Dict[str, Any]] = []
    for doc in docs:
        ops.append({"create": {"_id": doc.id}})
        ops.append(transform(doc))
    return ops


def _item_failures(resp: Dict[str, Any]) -> List[Dict[str, Any]]:
    failed = []
    for item in resp.get("items", []):
        result = next(iter(item.values()), {})
        if result.get("error") or result.get("status", 200) >= 300:
            failed.append(result)
    return failed


def flush_bulk(
    es: Elasticsearch,
    index: str,
    docs: Sequence[IndexedDocument],
    refresh: bool = False,
    request_timeout: float = 30.0,
) -> int:
    if not docs:
        return 0
    try:
        resp = body_of(
            es.options(request_timeout=request_timeout).bulk(
                index=index,
                operations=to_bulk_actions(docs),
                refresh="wait_for" if refresh else False,
            )
        )
    except (ApiError, TransportError) as e:
        raise BulkItemFailure(index, f"bulk request failed: {e!r}") from e

    failed = _item_failures(resp)
    if failed:
        c_bulk_failed.inc(len(failed))
        first = failed[0]
        err = first.get("error")
        if isinstance(err, dict):
            reason = f"{err.get('type', 'error')}: {err.get('reason')}"
        else:
            reason = str(err or f"status {first.get('status')}")
        logger.error("bulk errors", extra={"index": index, "failed": len(failed), "total": len(docs)})
        raise BulkItemFailure(first.get("_id"), reason)
    c_indexed.inc(len(docs))
    return len(docs)


def bulk_load(
    es: Elasticsearch,
    index: str,
    docs: Iterable[SourceDocument],
    store: Mapping[str, EmbeddingRecord],
    refresh: bool = False,
    request_timeout: float = 30.0,
) -> int:
    joined = join_documents(docs, store)
    n = flush_bulk(es, index, joined, refresh=refresh, request_timeout=request_timeout)
    logger.info("indexed", extra={"index": index, "count": n, "refresh": refresh})
    return n
