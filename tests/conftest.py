import numpy as np
import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import BadRequestError, ConnectionError as ESConnectionError, NotFoundError

from apps.core.settings import WorkflowSettings


def make_api_error(cls, status, err_type, reason="boom"):
    body = {"error": {"type": err_type, "reason": reason}, "status": status}
    meta = ApiResponseMeta(
        status=status, http_version="1.1", headers=HttpHeaders(), duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    return cls(message=err_type, meta=meta, body=body)


def _score(similarity, q, v):
    # same scales Elasticsearch reports for knn hits
    if similarity == "cosine":
        cos = float(np.dot(q, v) / (np.linalg.norm(q) * np.linalg.norm(v)))
        return (1 + cos) / 2
    if similarity == "dot_product":
        return (1 + float(np.dot(q, v))) / 2
    return 1 / (1 + float(np.sum((q - v) ** 2)))


class FakeIndices:
    def __init__(self, engine):
        self.engine = engine

    def create(self, index, mappings=None, settings=None):
        self.engine.calls.append(("create", index))
        if index in self.engine.indices_state:
            raise make_api_error(BadRequestError, 400, "resource_already_exists_exception",
                                 f"index [{index}] already exists")
        self.engine.indices_state[index] = {"mappings": mappings, "settings": settings, "docs": {}}
        return {"acknowledged": True, "shards_acknowledged": True, "index": index}

    def delete(self, index):
        self.engine.calls.append(("delete", index))
        if index not in self.engine.indices_state:
            raise make_api_error(NotFoundError, 404, "index_not_found_exception", f"no such index [{index}]")
        del self.engine.indices_state[index]
        return {"acknowledged": True}


class FakeElasticsearch:
    """In-memory stand-in covering the calls the workflow makes."""

    def __init__(self):
        self.indices_state = {}
        self.calls = []
        self.bulk_requests = []
        self.search_requests = []
        self.poisoned = []   # query vectors that make search raise a transport error
        self.options_seen = []
        self.indices = FakeIndices(self)

    def options(self, **kw):
        self.options_seen.append(kw)
        return self

    def info(self):
        return {"version": {"number": "8.13.0"}}

    def _index(self, name):
        if name not in self.indices_state:
            raise make_api_error(NotFoundError, 404, "index_not_found_exception", f"no such index [{name}]")
        return self.indices_state[name]

    def bulk(self, index, operations, refresh=False):
        self.bulk_requests.append({"index": index, "operations": operations, "refresh": refresh})
        docs = self._index(index)["docs"]
        items, errors = [], False
        for action, source in zip(operations[0::2], operations[1::2]):
            doc_id = action["create"]["_id"]
            if doc_id in docs:
                errors = True
                items.append({"create": {"_index": index, "_id": doc_id, "status": 409, "error": {
                    "type": "version_conflict_engine_exception",
                    "reason": f"[{doc_id}]: version conflict, document already exists"}}})
                continue
            docs[doc_id] = source
            items.append({"create": {"_index": index, "_id": doc_id, "status": 201, "result": "created"}})
        return {"took": 1, "errors": errors, "items": items}

    def search(self, index, knn, size=10):
        self.search_requests.append({"index": index, "knn": knn, "size": size})
        if knn["query_vector"] in self.poisoned:
            raise ESConnectionError("connection reset")
        state = self._index(index)
        similarity = state["mappings"]["properties"][knn["field"]]["similarity"]
        q = np.asarray(knn["query_vector"], dtype=float)
        scored = [
            (_score(similarity, q, np.asarray(src[knn["field"]], dtype=float)), doc_id, src)
            for doc_id, src in state["docs"].items()
        ]
        scored.sort(key=lambda t: t[0], reverse=True)
        top = scored[: knn["num_candidates"]][: knn["k"]][:size]
        return {"hits": {
            "total": {"value": len(top), "relation": "eq"},
            "hits": [{"_index": index, "_id": d, "_score": s, "_source": src} for s, d, src in top],
        }}


@pytest.fixture
def fake_es():
    return FakeElasticsearch()


@pytest.fixture
def api_error():
    return make_api_error


@pytest.fixture
def small_settings():
    return WorkflowSettings(dimensions=4, query_workers=2)


@pytest.fixture
def write_tsv(tmp_path):
    def _write(name, header, rows):
        path = tmp_path / name
        lines = ["\t".join(header)] + ["\t".join(r) for r in rows]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write
