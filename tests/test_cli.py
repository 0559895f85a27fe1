"""Tests for the doc-vector-index CLI."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from doc_vector_index import __version__, cli
from doc_vector_index.settings import get_default_index
from doc_vector_index.storage.paths import HOME_ENV_VAR

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, embeddings: object) -> Path:
    """Isolated configuration directory and fake embeddings for every command."""
    home = tmp_path / "home"
    monkeypatch.setenv(HOME_ENV_VAR, str(home))
    monkeypatch.delenv("OTEL_ENABLED", raising=False)
    monkeypatch.setattr(cli, "_create_embeddings", lambda settings: embeddings)
    return home


@pytest.fixture
def index_name() -> str:
    """A created index selected as default."""
    result = runner.invoke(cli.app, ["create", "--use"])
    assert result.exit_code == 0, result.output
    return result.output.split()[2]


@pytest.fixture
def documents(tmp_path: Path) -> list[Path]:
    fox = tmp_path / "fox.txt"
    fox.write_text("red fox ran far.", encoding="utf-8")
    sea = tmp_path / "sea.md"
    sea.write_text("# Sea\n\nsea was dark.", encoding="utf-8")
    return [fox, sea]


class TestIndexCommands:
    def test_version(self) -> None:
        result = runner.invoke(cli.app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_create_and_use(self) -> None:
        """create --use makes the new index the default."""
        result = runner.invoke(cli.app, ["create", "--use"])

        assert result.exit_code == 0
        assert result.output.strip().endswith("(default)")
        assert get_default_index() == result.output.split()[2]

    def test_use_unknown_index(self) -> None:
        result = runner.invoke(cli.app, ["use", "missing"])

        assert result.exit_code == 1
        assert "does not exist" in result.output

    def test_use_existing_index(self) -> None:
        name = runner.invoke(cli.app, ["create"]).output.split()[2]

        result = runner.invoke(cli.app, ["use", name])

        assert result.exit_code == 0
        assert get_default_index() == name

    def test_command_without_index(self) -> None:
        """Commands needing an index fail clearly when none is selected."""
        result = runner.invoke(cli.app, ["list"])

        assert result.exit_code == 1
        assert "No index selected" in result.output

    def test_unknown_index_reports_error(self) -> None:
        result = runner.invoke(cli.app, ["stats", "-i", "kmissing"])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_stats_json(self, index_name: str) -> None:
        result = runner.invoke(cli.app, ["stats", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["index"] == index_name
        assert (data["documents"], data["chunks"]) == (0, 0)


class TestDocumentCommands:
    def test_add_list_delete(self, index_name: str, documents: list[Path]) -> None:
        """Documents can be added, listed and deleted by uri."""
        result = runner.invoke(cli.app, ["add", *map(str, documents)])
        assert result.exit_code == 0, result.output
        assert f"Added 2 document(s) to {index_name}" in result.output

        listed = json.loads(runner.invoke(cli.app, ["list", "--format", "json"]).output)
        assert [entry["uri"] for entry in listed] == sorted(str(path) for path in documents)

        result = runner.invoke(cli.app, ["delete", str(documents[0])])
        assert result.exit_code == 0
        assert f"Deleted {documents[0]}" in result.output

        listed = json.loads(runner.invoke(cli.app, ["list", "--format", "json"]).output)
        assert [entry["uri"] for entry in listed] == [str(documents[1])]

    def test_add_with_uri(self, index_name: str, documents: list[Path]) -> None:
        result = runner.invoke(cli.app, ["add", str(documents[0]), "--uri", "https://example.com/fox"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(cli.app, ["list"])
        assert "https://example.com/fox (1 chunks)" in result.output

    def test_uri_requires_single_file(self, index_name: str, documents: list[Path]) -> None:
        result = runner.invoke(cli.app, ["add", *map(str, documents), "--uri", "x"])

        assert result.exit_code == 1
        assert "single file" in result.output

    def test_add_undecodable_file(self, index_name: str, tmp_path: Path) -> None:
        """A file that is not UTF-8 is reported without a traceback."""
        binary = tmp_path / "blob.txt"
        binary.write_bytes(b"\xff\xfe\x00 not text")

        result = runner.invoke(cli.app, ["add", str(binary)])

        assert result.exit_code == 1
        assert f"Error: Cannot read {binary}" in result.output
        assert "Traceback" not in result.output
        listed = json.loads(runner.invoke(cli.app, ["list", "--format", "json"]).output)
        assert listed == []

    def test_delete_unknown_document(self, index_name: str) -> None:
        result = runner.invoke(cli.app, ["delete", "missing.txt"])

        assert result.exit_code == 0
        assert "Document missing.txt not found" in result.output

    def test_list_empty(self, index_name: str) -> None:
        result = runner.invoke(cli.app, ["list"])

        assert result.exit_code == 0
        assert "No documents" in result.output

    def test_query_json(self, index_name: str, documents: list[Path]) -> None:
        """The best matching document comes first with its rendered section."""
        runner.invoke(cli.app, ["add", *map(str, documents)])

        result = runner.invoke(cli.app, ["query", "red fox ran far.", "--format", "json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data[0]["uri"] == str(documents[0])
        assert data[0]["score"] == pytest.approx(1.0)
        assert data[0]["sections"][0]["text"] == "red fox ran far."

    def test_query_human(self, index_name: str, documents: list[Path]) -> None:
        runner.invoke(cli.app, ["add", str(documents[0])])

        result = runner.invoke(cli.app, ["query", "red fox ran far.", "--sections", "0"])

        assert result.exit_code == 0
        assert f"[1] {documents[0]} (score: 1.0000)" in result.output

    def test_query_embedding_failure(self, index_name: str, documents: list[Path], embeddings: object) -> None:
        embeddings.status = "rate_limited"  # type: ignore[attr-defined]

        result = runner.invoke(cli.app, ["query", "anything"])

        assert result.exit_code == 1
        assert "Error generating embeddings" in result.output


class TestCompletion:
    def test_generate_bash(self) -> None:
        result = runner.invoke(cli.app, ["completion", "generate", "bash"])

        assert result.exit_code == 0
        assert "_DOC_VECTOR_INDEX_COMPLETE" in result.output
