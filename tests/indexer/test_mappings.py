import pytest

from apps.core.errors import SchemaInvalid
from apps.indexer.mappings import IndexSchema, Similarity, index_body


def test_dense_vector_mapping():
    schema = IndexSchema.build(dimensions=1024, similarity="cosine")
    props = schema.mappings()["properties"]
    assert props["id"] == {"type": "keyword"}
    assert props["text"] == {"type": "text"}
    assert props["vector"] == {"type": "dense_vector", "dims": 1024, "index": True, "similarity": "cosine"}


def test_index_body_carries_shards_and_mappings():
    body = index_body(IndexSchema.build(dimensions=8, similarity=Similarity.L2_NORM), shards=2, replicas=1)
    assert body["settings"] == {"number_of_shards": 2, "number_of_replicas": 1}
    assert body["mappings"]["properties"]["vector"]["similarity"] == "l2_norm"


@pytest.mark.parametrize("dims", [0, -3, 1025])
def test_dimensions_out_of_range(dims):
    with pytest.raises(SchemaInvalid):
        IndexSchema.build(dimensions=dims)


def test_max_dimensions_is_configurable():
    assert IndexSchema.build(dimensions=2048, max_dimensions=4096).dimensions == 2048


def test_unknown_similarity():
    with pytest.raises(SchemaInvalid):
        IndexSchema.build(dimensions=4, similarity="manhattan")
