"""Tests for the docsearch command-line entry point."""

from __future__ import annotations

import json
import logging

import orjson
import pytest

from docsearch.cli import build_argument_parser, main, read_jsonl
from docsearch.search.errors import MalformedInput


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def docs_jsonl(tmp_path, pet_documents):
    path = tmp_path / "docs.jsonl"
    lines = [
        orjson.dumps({"id": doc_id, "title": title, "body": body, "url": url})
        for doc_id, title, body, url in pet_documents
    ]
    path.write_bytes(b"\n".join(lines) + b"\n\n")
    return path


def _run(capsys, argv) -> tuple[int, dict | None]:
    code = main(argv)
    out = capsys.readouterr().out
    return code, (json.loads(out) if out.strip() else None)


def test_index_search_and_stats(capsys, docs_jsonl, index_path) -> None:
    code, payload = _run(capsys, ["index", str(docs_jsonl), "--index", str(index_path)])
    assert code == 0
    assert payload["created"] is True
    assert payload["documents_indexed"] == 2

    code, payload = _run(capsys, ["search", "pets", "--index", str(index_path), "--limit", "1"])
    assert code == 0
    assert payload["total_hits"] == 1
    assert payload["results"][0]["url"] == "doc1.html"
    assert payload["results"][0]["snippet"] == "cats are great [[pets]]"

    code, payload = _run(capsys, ["search", "cats", "--index", str(index_path), "--snippet-length", "4"])
    assert code == 0
    assert payload["results"][0]["snippet"] == "..."

    code, payload = _run(capsys, ["stats", "--index", str(index_path)])
    assert code == 0
    assert payload["document_count"] == 2
    assert payload["analyzer"] == "standard"


def test_rebuild_flag_replaces_index(capsys, docs_jsonl, index_path, tmp_path) -> None:
    assert main(["index", str(docs_jsonl), "--index", str(index_path)]) == 0
    other = tmp_path / "other.jsonl"
    other.write_text('{"id": "doc3", "title": "Birds", "body": "birds sing", "url": "doc3.html"}\n')
    capsys.readouterr()

    code, payload = _run(capsys, ["index", str(other), "--index", str(index_path), "--rebuild"])
    assert code == 0
    assert payload["created"] is False

    _, stats = _run(capsys, ["stats", "--index", str(index_path)])
    assert stats["document_count"] == 1


def test_search_without_index_fails(capsys, tmp_path) -> None:
    code, payload = _run(capsys, ["search", "pets", "--index", str(tmp_path / "missing.sqlite")])
    assert code == 1
    assert payload is None
    assert not (tmp_path / "missing.sqlite").exists()


def test_malformed_input_leaves_index_untouched(capsys, docs_jsonl, index_path, tmp_path) -> None:
    assert main(["index", str(docs_jsonl), "--index", str(index_path)]) == 0
    broken = tmp_path / "broken.jsonl"
    broken.write_text('{"id": "doc3", "title": "", "body": "birds", "url": ""}\n{not json\n')
    capsys.readouterr()

    assert main(["index", str(broken), "--index", str(index_path), "--rebuild"]) == 1

    _, stats = _run(capsys, ["stats", "--index", str(index_path)])
    assert stats["document_count"] == 2


def test_missing_input_file_fails_without_creating_index(capsys, index_path, tmp_path) -> None:
    assert main(["index", str(tmp_path / "nope.jsonl"), "--index", str(index_path)]) == 1
    assert not index_path.exists()


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["search"],
        ["search", "pets", "--limit", "-1"],
        ["search", "pets", "--limit", "many"],
        ["unknown-command"],
    ],
)
def test_argument_errors_exit_with_code_2(argv) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    assert excinfo.value.code == 2


def test_invalid_configuration_exits_with_code_2(monkeypatch, capsys, index_path) -> None:
    monkeypatch.setenv("DOCSEARCH_BM25_K1", "99")
    assert main(["stats", "--index", str(index_path)]) == 2
    assert "Invalid configuration" in capsys.readouterr().err


def test_read_jsonl_rejects_non_objects(tmp_path) -> None:
    path = tmp_path / "list.jsonl"
    path.write_text("[1, 2, 3]\n")
    with pytest.raises(MalformedInput, match="expected a JSON object"):
        list(read_jsonl(path))


def test_parser_has_all_commands() -> None:
    parser = build_argument_parser()
    args = parser.parse_args(["index", "in.jsonl", "--rebuild"])
    assert args.command == "index"
    assert args.rebuild is True
    assert args.index is None
