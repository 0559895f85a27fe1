"""CLI entry point for doc-vector-index.

This module provides a CLI for creating document indexes in the local
store, adding and deleting documents, and running semantic queries.

Command Structure:
    doc-vector-index
    ├── create, use
    ├── add, delete, list
    ├── query, stats
    └── completion
"""

import asyncio
import atexit
import json
from collections.abc import Coroutine
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from tqdm import tqdm

from doc_vector_index import __version__
from doc_vector_index.completion import completion_app
from doc_vector_index.logging_config import get_logger, setup_logging
from doc_vector_index.models import CreateIndexConfig, MetadataConfig, Settings
from doc_vector_index.settings import load_settings, set_default_index
from doc_vector_index.storage import FileTransport, ensure_config_dir, get_store_dir
from doc_vector_index.telemetry import TelemetryConfig, TelemetryService
from doc_vector_index.vector.chunking import TextSplitterConfig
from doc_vector_index.vector.documents import DocumentIndex, DocumentIndexConfig
from doc_vector_index.vector.embeddings import BedrockEmbeddings, EmbeddingsModel
from doc_vector_index.vector.errors import VectorIndexError

logger = get_logger(__name__)

T = TypeVar("T")

app = typer.Typer(invoke_without_command=True)


class OutputFormat(str, Enum):
    """Output format options."""

    HUMAN = "human"
    JSON = "json"


IndexOption = Annotated[
    str | None,
    typer.Option("--index", "-i", help="Index name (defaults to the index selected with 'use')"),
]


# =============================================================================
# Version Callback
# =============================================================================


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"doc-vector-index version {__version__}")
        raise typer.Exit()


def _shutdown_telemetry() -> None:
    """Shutdown telemetry on exit."""
    TelemetryService.get_instance().shutdown()


# =============================================================================
# Helper Functions
# =============================================================================


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run an index coroutine, turning index errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except VectorIndexError as e:
        logger.debug("Command failed", exc_info=True)
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _create_transport() -> FileTransport:
    ensure_config_dir()
    return FileTransport(get_store_dir())


def _create_embeddings(settings: Settings) -> EmbeddingsModel:
    return BedrockEmbeddings(model_id=settings.embedding_model, region=settings.aws_region)


def _resolve_index_name(index_name: str | None, settings: Settings) -> str:
    """Return the explicit index name or the default, or exit with an error."""
    name = index_name or settings.default_index
    if not name:
        typer.echo(
            "Error: No index selected. Pass --index NAME or run: doc-vector-index use NAME",
            err=True,
        )
        raise typer.Exit(1)
    return name


def _open_index(index_name: str | None, with_embeddings: bool = False) -> DocumentIndex:
    settings = load_settings()
    config = DocumentIndexConfig(
        index_name=_resolve_index_name(index_name, settings),
        embeddings=_create_embeddings(settings) if with_embeddings else None,
        chunking=TextSplitterConfig(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
        ),
    )
    return DocumentIndex(_create_transport(), config)


# =============================================================================
# Main Callback
# =============================================================================


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Verbosity level: -v=INFO, -vv=DEBUG, -vvv=TRACE (includes library internals)",
        ),
    ] = 0,
    _version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
    telemetry: Annotated[
        bool,
        typer.Option(
            "--telemetry",
            envvar="OTEL_ENABLED",
            help="Enable OpenTelemetry tracing (or set OTEL_ENABLED=true)",
        ),
    ] = False,
) -> None:
    """Document vector index with semantic search over AWS Bedrock embeddings.

    \b
    COMMANDS:
        create      Create a new, empty index
        use         Select the default index
        add         Add or replace documents
        delete      Delete a document by uri
        list        List indexed documents
        query       Semantic search across documents
        stats       Show document and chunk counts

    \b
    QUICK START:
        doc-vector-index create --use
        doc-vector-index add docs/*.md
        doc-vector-index query "How are updates committed?"

    \b
    DATA STORAGE:
        ~/.config/doc-vector-index/settings.json   - Settings and default index
        ~/.config/doc-vector-index/store/          - Published index snapshots and documents
        (override the directory with DOC_VECTOR_INDEX_HOME)
    """
    setup_logging(verbose)

    config = TelemetryConfig.from_env()
    config.enabled = telemetry or config.enabled
    TelemetryService.get_instance().initialize(config)
    atexit.register(_shutdown_telemetry)

    if ctx.invoked_subcommand is None:
        typer.echo("doc-vector-index - Document vector index with semantic search")
        typer.echo("Use --help for available commands")


# =============================================================================
# Index Commands
# =============================================================================


@app.command(name="create")
def create_command(
    use: Annotated[bool, typer.Option("--use", help="Make the new index the default")] = False,
    indexed: Annotated[
        list[str] | None,
        typer.Option("--indexed", help="Only keep these metadata keys (repeatable)"),
    ] = None,
) -> None:
    """Create a new, empty index in the local store.

    \b
    EXAMPLES:
        doc-vector-index create
        doc-vector-index create --use --indexed lang
    """
    index = DocumentIndex(_create_transport())
    config = CreateIndexConfig(metadata_config=MetadataConfig(indexed=indexed or None))
    handle = _run(index.create_index(config))

    if use:
        set_default_index(handle.name)
        typer.echo(f"Created index {handle.name} (default)")
    else:
        typer.echo(f"Created index {handle.name}")


@app.command(name="use")
def use_command(
    index_name: Annotated[str, typer.Argument(help="Index name to use by default")],
) -> None:
    """Select the index used when --index is not given."""
    exists = _run(_create_transport().exists(index_name))
    if not exists:
        typer.echo(f"Error: Index '{index_name}' does not exist.", err=True)
        raise typer.Exit(1)
    set_default_index(index_name)
    typer.echo(f"Using index {index_name}")


@app.command(name="stats")
def stats_command(
    index_name: IndexOption = None,
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format: human or json")
    ] = OutputFormat.HUMAN,
) -> None:
    """Show document and chunk counts of an index."""
    index = _open_index(index_name)
    stats = _run(index.get_catalog_stats())

    if output_format == OutputFormat.JSON:
        data = {"index": index.index_name, **stats.model_dump(mode="json")}
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(f"Index: {index.index_name}")
        typer.echo(f"  Documents: {stats.documents}")
        typer.echo(f"  Chunks: {stats.chunks}")
        if stats.metadata_config.indexed:
            typer.echo(f"  Indexed metadata: {', '.join(stats.metadata_config.indexed)}")


# =============================================================================
# Document Commands
# =============================================================================


@app.command(name="add")
def add_command(
    paths: Annotated[list[Path], typer.Argument(help="Text files to add", exists=True, dir_okay=False)],
    uri: Annotated[
        str | None, typer.Option("--uri", help="Document uri (single file only; default: the path)")
    ] = None,
    doc_type: Annotated[
        str | None, typer.Option("--doc-type", help="Document type, e.g. md or py (default: extension)")
    ] = None,
    index_name: IndexOption = None,
) -> None:
    """Add documents, replacing documents already stored under the same uri.

    \b
    EXAMPLES:
        doc-vector-index add README.md
        doc-vector-index add notes.txt --uri https://example.com/notes --doc-type md
        doc-vector-index add docs/*.md -i k3f9...

    \b
    REQUIREMENTS:
        - AWS credentials configured (AWS_PROFILE or environment variables)
        - Bedrock access enabled for the configured embedding model
    """
    if uri and len(paths) > 1:
        typer.echo("Error: --uri can only be used with a single file.", err=True)
        raise typer.Exit(1)

    index = _open_index(index_name, with_embeddings=True)

    async def add_all() -> int:
        for path in tqdm(paths, desc="Adding documents", unit="doc", disable=len(paths) < 2):
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                typer.echo(f"Error: Cannot read {path}: {e}", err=True)
                raise typer.Exit(1) from e
            document = await index.upsert_document(uri or str(path), text, doc_type=doc_type)
            logger.info("Added %s as %s", document.uri, document.id)
        return len(paths)

    count = _run(add_all())
    typer.echo(f"Added {count} document(s) to {index.index_name}")


@app.command(name="delete")
def delete_command(
    uri: Annotated[str, typer.Argument(help="Document uri to delete")],
    index_name: IndexOption = None,
) -> None:
    """Delete a document and all of its chunks."""
    index = _open_index(index_name)

    async def delete() -> bool:
        if await index.get_document_id(uri) is None:
            return False
        await index.delete_document(uri)
        return True

    if _run(delete()):
        typer.echo(f"Deleted {uri}")
    else:
        typer.echo(f"Document {uri} not found")


@app.command(name="list")
def list_command(
    index_name: IndexOption = None,
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format: human or json")
    ] = OutputFormat.HUMAN,
) -> None:
    """List documents in an index."""
    index = _open_index(index_name)
    documents = sorted(_run(index.list_documents()), key=lambda document: document.uri)

    if output_format == OutputFormat.JSON:
        data = [
            {"uri": d.uri, "document_id": d.document_id, "chunks": len(d.chunks)} for d in documents
        ]
        typer.echo(json.dumps(data, indent=2))
        return

    if not documents:
        typer.echo("No documents")
        return
    for document in documents:
        typer.echo(f"{document.uri} ({len(document.chunks)} chunks)")
        typer.echo(f"    id: {document.document_id}")


@app.command(name="query")
def query_command(
    query: Annotated[str, typer.Argument(help="Natural language query")],
    num_documents: Annotated[
        int, typer.Option("-n", "--num", help="Max documents to return")
    ] = 10,
    max_chunks: Annotated[
        int, typer.Option("--chunks", help="Chunks retrieved before grouping by document")
    ] = 50,
    sections: Annotated[
        int, typer.Option("--sections", help="Text sections rendered per document (0 = none)")
    ] = 1,
    tokens: Annotated[int, typer.Option("--tokens", help="Max tokens per section")] = 500,
    index_name: IndexOption = None,
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format: human or json")
    ] = OutputFormat.HUMAN,
) -> None:
    """Semantic search across the documents of an index.

    \b
    EXAMPLES:
        doc-vector-index query "How are updates committed?"
        doc-vector-index query "retry policy" -n 3 --sections 2 --format json

    \b
    JSON OUTPUT SCHEMA:
        [{"uri": "...", "document_id": "...", "score": 0.85, "chunks": 3,
          "sections": [{"score": 0.85, "tokens": 120, "text": "..."}]}]
    """
    index = _open_index(index_name, with_embeddings=True)
    logger.info("Query: %s", query)

    async def search() -> list[dict[str, Any]]:
        results = await index.query_documents(query, max_documents=num_documents, max_chunks=max_chunks)
        rendered: list[dict[str, Any]] = []
        for result in results:
            entry: dict[str, Any] = {
                "uri": result.uri,
                "document_id": result.document_id,
                "score": result.score,
                "chunks": len(result.chunks),
                "sections": [],
            }
            if sections > 0:
                for section in await result.render_sections(tokens, sections):
                    entry["sections"].append(
                        {"score": section.score, "tokens": section.token_count, "text": section.text}
                    )
            rendered.append(entry)
        return rendered

    results = _run(search())

    if output_format == OutputFormat.JSON:
        typer.echo(json.dumps(results, indent=2))
        return

    if not results:
        typer.echo("No results found")
        return
    for i, result in enumerate(results, 1):
        typer.echo(f"[{i}] {result['uri']} (score: {result['score']:.4f})")
        for j, section in enumerate(result["sections"], 1):
            typer.echo(f"\n    Section {j} (score: {section['score']:.4f}, {section['tokens']} tokens):")
            typer.echo("    " + "-" * 40)
            for line in section["text"].splitlines():
                typer.echo(f"    {line}")
        typer.echo()


# =============================================================================
# Register Sub-Apps
# =============================================================================


app.add_typer(completion_app, name="completion")


if __name__ == "__main__":
    app()
