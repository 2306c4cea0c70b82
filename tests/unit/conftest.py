"""Conftest for unit tests - automatically mark all tests as unit tests."""

import pytest


def pytest_collection_modifyitems(config, items):
    """Automatically mark all tests in the unit directory as unit tests."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def fruit_db(memory_db):
    """Four documents; "apple" ranks docs 2, 3, 1 under BM25 and doc 4 lacks it.

    Slot 0 holds b/a/c/a and slot 1 holds x/x/y/(none).
    """
    from fts_bridge.document import Document

    rows = [
        ({"apple": 1, "red": 1}, {0: "b", 1: "x"}),
        ({"apple": 3}, {0: "a", 1: "x"}),
        ({"apple": 2, "green": 1}, {0: "c", 1: "y"}),
        ({"banana": 1}, {0: "a"}),
    ]
    for number, (terms, values) in enumerate(rows, start=1):
        doc = Document()
        doc.set_data(f"doc {number}")
        for term, wdf in terms.items():
            doc.add_term(term, wdf)
        for slot, value in values.items():
            doc.add_value(slot, value)
        memory_db.add_document(doc)
    return memory_db
