from typing import Optional

from prometheus_client import Counter, start_http_server

c_indexed = Counter("knn_documents_indexed_total", "Documents accepted by bulk create")
c_bulk_failed = Counter("knn_bulk_item_failures_total", "Bulk items rejected by the engine")
c_queries = Counter("knn_queries_total", "KNN queries issued")
c_query_failed = Counter("knn_query_failures_total", "KNN queries that failed")


def start_metrics(port: Optional[int]) -> bool:
    if not port:
        return False
    start_http_server(port)
    return True
