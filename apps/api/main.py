# serve with: uvicorn apps.api.main:app --host 0.0.0.0 --port 8000  (pip install .[api])
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from elasticsearch import NotFoundError

from apps.core.errors import QueryFailure, SchemaInvalid
from apps.core.es import body_of
from apps.query.runner import build_query, run_query
from .clients import es_client, get_settings
from .schemas import HealthResponse, KnnHit, KnnSearchRequest, KnnSearchResponse

app = FastAPI(title="KNN Search API", version="0.1.0")

# Dev CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
def health():
    settings = get_settings()
    info = {}
    try:
        info["elasticsearch"] = body_of(es_client().info()).get("version", {})
    except Exception as e:
        info["elasticsearch_error"] = repr(e)
    return HealthResponse(ok="elasticsearch_error" not in info, index=settings.index_name, info=info)


@app.post("/knn/search", response_model=KnnSearchResponse)
def knn_search(payload: KnnSearchRequest):
    settings = get_settings()
    try:
        spec = build_query(payload.vector, settings, k=payload.k, num_candidates=payload.num_candidates)
        hits = run_query(es_client(), settings.index_name, spec, request_timeout=settings.request_timeout)
    except SchemaInvalid as e:
        raise HTTPException(status_code=422, detail=str(e))
    except QueryFailure as e:
        if isinstance(e.__cause__, NotFoundError):
            raise HTTPException(status_code=404, detail=f"Index {settings.index_name} not found")
        raise HTTPException(status_code=502, detail=str(e))
    return KnnSearchResponse(
        index=settings.index_name,
        k=spec.k,
        num_candidates=spec.num_candidates,
        hits=[KnnHit(id=h.document_id, score=h.score, text=h.source.text) for h in hits],
    )
