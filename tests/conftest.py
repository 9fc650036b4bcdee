"""Shared test fixtures and configuration."""

import os

import pytest


# Test environment that pins every config value
TEST_ENV = {
    "DOCSEARCH_INDEX_PATH": "test-index.sqlite",
    "DOCSEARCH_ANALYZER": "standard",
    "DOCSEARCH_DEFAULT_LIMIT": "10",
    "DOCSEARCH_SNIPPET_LENGTH": "150",
    "DOCSEARCH_SNIPPET_STYLE": "plain",
    "DOCSEARCH_SNIPPET_MARKER": "...",
    "DOCSEARCH_BM25_K1": "1.2",
    "DOCSEARCH_BM25_B": "0.75",
    "DOCSEARCH_TITLE_BOOST": "2.0",
    "DOCSEARCH_ENABLE_PHRASE_BONUS": "false",
    "DOCSEARCH_LOG_LEVEL": "info",
    "DOCSEARCH_LOG_JSON": "true",
}


for key, value in TEST_ENV.items():
    os.environ[key] = value

from docsearch.search.sqlite_storage import IndexStore


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset DOCSEARCH_* variables before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def index_path(tmp_path):
    return tmp_path / "index.sqlite"


@pytest.fixture
def store(index_path):
    """Fresh empty index store, closed after the test."""
    index_store = IndexStore.create(index_path)
    yield index_store
    index_store.close()


@pytest.fixture
def pet_documents():
    return [
        ("doc1", "Cats", "cats are great pets", "doc1.html"),
        ("doc2", "Dogs", "dogs are loyal pets", "doc2.html"),
    ]
