"""
Loaders for the tab-separated inputs of the workflow.

- embeddings file: header ``id<TAB>embedding``, the embedding cell holds a JSON
  array literal such as ``[0.01,-0.02,...]``.
- text files (documents and labeled queries): header ``id<TAB>text``.

Any bad row fails the whole load; there is no partial mode.
"""
import csv
import json
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from apps.core.errors import MalformedEmbedding, MalformedSource, SourceNotFound
from apps.core.logs import get_logger
from .models import EmbeddingRecord, SourceDocument

logger = get_logger("knn.ingest")

DELIMITER = "\t"
PathLike = Union[str, Path]

# embedding cells for 1024 dims overflow csv's default 128k field limit
csv.field_size_limit(16 * 1024 * 1024)


def _rows(
    path: PathLike, required: Sequence[str], malformed: Callable[[str, str, int], Exception]
) -> Iterator[Tuple[int, Dict[str, str]]]:
    """Yield ``(line, row)``; undecodable bytes or broken rows raise via ``malformed``."""
    p = Path(path)
    if not p.is_file():
        raise SourceNotFound(str(p), "resource not found")
    with p.open(newline="", encoding="utf-8") as fh:
        reader = csv.DictReader(fh, delimiter=DELIMITER, quoting=csv.QUOTE_NONE)
        try:
            fieldnames = reader.fieldnames or []
        except (UnicodeDecodeError, csv.Error) as e:
            raise malformed(str(p), f"unreadable header: {e}", 1) from e
        missing = [c for c in required if c not in fieldnames]
        if missing:
            raise malformed(str(p), f"missing column(s) {','.join(missing)}", 1)
        rows = iter(reader)
        while True:
            try:
                row = next(rows)
            except StopIteration:
                return
            except (UnicodeDecodeError, csv.Error) as e:
                raise malformed(str(p), f"unreadable row: {e}", reader.line_num) from e
            # line_num stays right when blank lines are skipped
            yield reader.line_num, row


def _parse_vector(raw: Optional[str]) -> List[float]:
    value = json.loads(raw or "")
    if not isinstance(value, list) or not all(
        isinstance(x, (int, float)) and not isinstance(x, bool) for x in value
    ):
        raise ValueError("embedding is not a list of numbers")
    return [float(x) for x in value]


def load_embeddings(path: PathLike, dimensions: Optional[int] = None) -> Dict[str, EmbeddingRecord]:
    """
    Parse the embeddings file into an ``id -> EmbeddingRecord`` mapping.

    When ``dimensions`` is given every vector must have exactly that length.
    Duplicate ids are rejected rather than silently overwritten.
    """
    def malformed(ident: str, reason: str, line: int) -> Exception:
        return MalformedEmbedding(ident, reason, line=line)

    store: Dict[str, EmbeddingRecord] = {}
    for line, row in _rows(path, ("id", "embedding"), malformed):
        doc_id = (row.get("id") or "").strip()
        if not doc_id:
            raise MalformedEmbedding(None, "empty id", line=line)
        if doc_id in store:
            raise MalformedEmbedding(doc_id, "duplicate id", line=line)
        try:
            record = EmbeddingRecord(id=doc_id, vector=_parse_vector(row.get("embedding")))
        except ValidationError as e:
            raise MalformedEmbedding(doc_id, e.errors()[0]["msg"], line=line) from e
        except (ValueError, OverflowError) as e:
            # json.JSONDecodeError is a ValueError; huge integer literals overflow float()
            raise MalformedEmbedding(doc_id, str(e), line=line) from e
        if dimensions is not None and record.dimensions != dimensions:
            raise MalformedEmbedding(
                doc_id, f"expected {dimensions} dimensions, got {record.dimensions}", line=line
            )
        store[doc_id] = record
    logger.info("loaded embeddings", extra={"path": str(path), "count": len(store)})
    return store


def load_texts(path: PathLike) -> List[SourceDocument]:
    """Read an ``id<TAB>text`` file in file order."""
    def malformed(ident: str, reason: str, line: int) -> Exception:
        return MalformedSource(ident, f"line {line}: {reason}")

    docs: List[SourceDocument] = []
    for line, row in _rows(path, ("id", "text"), malformed):
        doc_id = (row.get("id") or "").strip()
        if not doc_id:
            raise MalformedSource(str(path), f"line {line}: empty id")
        docs.append(SourceDocument(id=doc_id, text=row.get("text") or ""))
    logger.info("loaded texts", extra={"path": str(path), "count": len(docs)})
    return docs
