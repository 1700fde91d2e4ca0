"""Command-line interface for the kgrag retrieval core.

Commands:
- chunk: Show how a file is segmented
- search: Ingest a file or directory into a fresh store and search it
- ask: Same as search, then answer the question with an LLM
- graph: Load extraction payloads into an entity graph and report on it
- info: Show the effective configuration

Every command builds its own in-memory stores; nothing persists between runs.
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from kgrag.config.loader import ConfigError, get_default_config_path, load_config
from kgrag.config.schema import AppConfig, EmbeddingProviderType, LLMProviderType
from kgrag.core.chunking import ChunkingError, create_chunker
from kgrag.entities import Chunk
from kgrag.graph import EntityGraph, detect_communities, generate_clusters, summarize_clusters
from kgrag.graph.analytics import cross_community_connections
from kgrag.graph.extraction import ExtractionResult, apply_extraction, parse_extraction
from kgrag.observability.logging import configure_from_config, get_logger
from kgrag.pipelines.extraction import GraphExtractionPipeline
from kgrag.pipelines.ingestion import IngestionError, IngestionPipeline
from kgrag.pipelines.query import RetrievalCoordinator, render_context
from kgrag.providers import ProviderError, create_embedding_provider, create_llm_provider
from kgrag.service import KnowledgeStores, initialize_stores

app = typer.Typer(
    name="kgrag",
    help="In-memory knowledge retrieval: chunking, vector search and entity graphs",
    add_completion=False,
)

graph_app = typer.Typer(help="Inspect entity graphs built from extraction payloads")
app.add_typer(graph_app, name="graph")

console = Console()
logger = get_logger(__name__)

PREVIEW_LENGTH = 100


def _preview(text: str, length: int = PREVIEW_LENGTH) -> str:
    text = text.replace("\n", " ")
    return text if len(text) <= length else text[:length] + "..."


def _load_config(
    config_file: Optional[Path],
    embedding_provider: Optional[EmbeddingProviderType] = None,
    llm_provider: Optional[LLMProviderType] = None,
) -> AppConfig:
    """Load configuration, apply command-line overrides and setup logging."""
    if config_file is None:
        config_file = get_default_config_path()

    try:
        config = load_config(config_file)
    except (ConfigError, ValidationError) as e:
        console.print(f"Invalid configuration: {e}", style="red", markup=False)
        raise typer.Exit(1)

    if embedding_provider is not None:
        config.embedding.provider = embedding_provider
    if llm_provider is not None:
        config.llm.provider = llm_provider

    configure_from_config(config.logging)
    return config


@app.command()
def chunk(
    file_path: Path = typer.Argument(..., help="File to segment"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show full chunk content"),
):
    """Show the chunks a file is segmented into."""
    config = _load_config(config_file)

    if not file_path.is_file():
        console.print(f"[red]File not found: {file_path}[/red]")
        raise typer.Exit(1)

    try:
        chunker = create_chunker(config.chunking)
    except ChunkingError as e:
        console.print(f"[red]Invalid chunking configuration: {e}[/red]")
        raise typer.Exit(1)

    text = file_path.read_text(encoding="utf-8", errors="replace")
    chunks = chunker.chunk(str(file_path), text)

    if not chunks:
        console.print("[yellow]No chunks produced[/yellow]")
        return

    table = Table(title=f"Chunks ({config.chunking.strategy.value})")
    table.add_column("Index", style="cyan", no_wrap=True)
    table.add_column("Reference", style="blue")
    table.add_column("Size", style="yellow", no_wrap=True)
    table.add_column("Content Preview", style="green")

    for idx, item in enumerate(chunks):
        table.add_row(
            str(idx),
            item.reference,
            f"{len(item.content)} chars",
            item.content if verbose else _preview(item.content),
        )

    console.print(table)
    console.print(f"\n[green]{len(chunks)} chunk(s)[/green]")


async def _ingest(config: AppConfig, path: Path) -> Optional[tuple[KnowledgeStores, RetrievalCoordinator]]:
    """Build fresh stores, ingest path and return a coordinator over them."""
    try:
        embedding_provider = create_embedding_provider(config.embedding)
    except (ProviderError, ValueError) as e:
        console.print(f"[red]Error creating embedding provider: {e}[/red]")
        return None

    stores = await initialize_stores(config)
    pipeline = IngestionPipeline(config, embedding_provider, stores.vector_store)

    try:
        result = await pipeline.ingest_path(path)
    except IngestionError as e:
        console.print(f"[red]{e}[/red]")
        await embedding_provider.close()
        return None

    console.print(
        f"[cyan]Ingested {result.document_count} document(s): "
        f"{result.embedded_count} of {result.chunk_count} chunk(s) embedded[/cyan]"
    )
    if result.skipped_count:
        console.print(f"[yellow]{result.skipped_count} chunk(s) skipped[/yellow]")

    if config.ingestion.extract_graph:
        await _extract_graph(config, stores, result.chunks)

    return stores, RetrievalCoordinator(config, embedding_provider, stores.vector_store)


async def _extract_graph(config: AppConfig, stores: KnowledgeStores, chunks: list[Chunk]) -> None:
    try:
        llm_provider = create_llm_provider(config.llm)
    except (ProviderError, ValueError) as e:
        console.print(f"[red]Error creating LLM provider: {e}[/red]")
        return

    try:
        result = await GraphExtractionPipeline(config, llm_provider, stores.graph).extract(chunks)
    finally:
        await llm_provider.close()

    console.print(
        f"[cyan]Graph: {result.entities_added} entities, {result.relationships_added} relationships "
        f"from {result.extracted_count} of {result.chunk_count} chunk(s)[/cyan]"
    )


@app.command()
def search(
    path: Path = typer.Argument(..., help="File or directory to ingest"),
    query: str = typer.Argument(..., help="Search query"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of candidates"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    provider: Optional[EmbeddingProviderType] = typer.Option(
        None, "--provider", "-p", help="Embedding provider override"
    ),
):
    """Ingest PATH into a fresh store and run a filtered search."""
    config = _load_config(config_file, embedding_provider=provider)
    found = asyncio.run(_search_async(config, path, query, top_k))
    if found is None:
        raise typer.Exit(1)


async def _search_async(config: AppConfig, path: Path, query: str, top_k: Optional[int]) -> Optional[int]:
    ingested = await _ingest(config, path)
    if ingested is None:
        return None
    stores, coordinator = ingested

    try:
        results = await coordinator.search(query, top_k)
    finally:
        await coordinator.embedding_provider.close()
        await stores.close()

    if not results:
        console.print("[yellow]No results found[/yellow]")
        return 0

    console.print(f"\n[green]Found {len(results)} result(s):[/green]\n")
    for i, result in enumerate(results, 1):
        console.print(f"[bold cyan]{i}. Score: {result.score:.4f}[/bold cyan]")
        console.print(f"   Reference: {result.reference}")
        console.print(f"   {_preview(result.content, 200)}")
        console.print()
    return len(results)


@app.command()
def ask(
    path: Path = typer.Argument(..., help="File or directory to ingest"),
    question: str = typer.Argument(..., help="Question to answer"),
    top_k: Optional[int] = typer.Option(None, "--top-k", "-k", help="Number of candidates"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
    provider: Optional[EmbeddingProviderType] = typer.Option(
        None, "--provider", "-p", help="Embedding provider override"
    ),
    llm: Optional[LLMProviderType] = typer.Option(None, "--llm", help="LLM provider override"),
    show_context: bool = typer.Option(False, "--show-context", help="Print the context sent to the LLM"),
):
    """Ingest PATH, retrieve context for QUESTION and answer it with an LLM."""
    config = _load_config(config_file, embedding_provider=provider, llm_provider=llm)
    ok = asyncio.run(_ask_async(config, path, question, top_k, show_context))
    if not ok:
        raise typer.Exit(1)


async def _ask_async(
    config: AppConfig, path: Path, question: str, top_k: Optional[int], show_context: bool
) -> bool:
    ingested = await _ingest(config, path)
    if ingested is None:
        return False
    stores, coordinator = ingested

    try:
        coordinator.llm_provider = create_llm_provider(config.llm)
        answer, context = await coordinator.answer(question, top_k)
    except (ProviderError, ValueError) as e:
        console.print(f"[red]Error answering question: {e}[/red]")
        logger.error("ask_error", error=str(e))
        return False
    finally:
        await coordinator.embedding_provider.close()
        if coordinator.llm_provider is not None:
            await coordinator.llm_provider.close()
        await stores.close()

    if show_context:
        console.print(render_context(context), markup=False)
        console.print()
    console.print(answer, markup=False)
    return True


@app.command()
def info(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show the effective configuration."""
    config = _load_config(config_file)

    table = Table(title="kgrag Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Log Level", config.logging.level.value)
    table.add_row("Embedding Provider", config.embedding.provider.value)
    table.add_row("Embedding Model", config.embedding.model_name)
    table.add_row("LLM Provider", config.llm.provider.value)
    table.add_row("LLM Model", config.llm.model_name)
    table.add_row("Chunking Strategy", config.chunking.strategy.value)
    table.add_row("Chunk Size", str(config.chunking.chunk_size))
    table.add_row("Overlap", str(config.chunking.overlap))
    table.add_row("Top K", str(config.retrieval.top_k))
    table.add_row("MMR", "on" if config.retrieval.use_mmr else "off")
    table.add_row("Extensions", " ".join(config.chunking.supported_extensions))

    console.print(table)


def _build_graph(files: list[Path]) -> EntityGraph:
    """Load extraction payload files (one JSON object each) into a new graph."""
    graph = EntityGraph()
    total = ExtractionResult()

    for file_path in files:
        if not file_path.is_file():
            console.print(f"[red]File not found: {file_path}[/red]")
            raise typer.Exit(1)
        payload = parse_extraction(file_path.read_text(encoding="utf-8", errors="replace"))
        if payload is None:
            console.print(f"[yellow]Skipping invalid payload: {file_path}[/yellow]")
            continue
        total = total + apply_extraction(graph, payload, str(file_path))

    logger.info(
        "graph_loaded",
        files=len(files),
        entities_added=total.entities_added,
        relationships_added=total.relationships_added,
    )
    return graph


@graph_app.command("summary")
def graph_summary(
    files: list[Path] = typer.Argument(..., help="Extraction payload JSON files"),
    limit: int = typer.Option(5, "--limit", "-n", help="Entries per section"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Entity and relationship counts, busiest entities and relationship types."""
    _load_config(config_file)
    graph = _build_graph(files)

    console.print(f"Entities: {graph.entity_count}")
    console.print(f"Relationships: {graph.relationship_count}")
    if graph.is_empty:
        return

    connected = Table(title="Most Connected Entities")
    connected.add_column("Entity", style="cyan")
    connected.add_column("Type", style="magenta")
    connected.add_column("Connections", style="yellow")
    for entity, count in graph.most_connected(limit):
        connected.add_row(entity.name, entity.type, str(count))
    console.print(connected)

    types = Table(title="Relationship Types")
    types.add_column("Type", style="cyan")
    types.add_column("Count", style="yellow")
    for rel_type, count in list(graph.relationship_type_counts().items())[:limit]:
        types.add_row(rel_type, str(count))
    console.print(types)

    isolated = graph.isolated_entities()
    if isolated:
        console.print(f"Isolated entities: {len(isolated)}")


@graph_app.command("communities")
def graph_communities(
    files: list[Path] = typer.Argument(..., help="Extraction payload JSON files"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Detect communities and print per-cluster statistics."""
    _load_config(config_file)
    graph = _build_graph(files)

    assignment, modularity = detect_communities(graph)
    clusters = generate_clusters(graph, assignment)
    summary = summarize_clusters(clusters)

    console.print(f"Communities: {summary.count}")
    console.print(f"Modularity: {modularity:.4f}")
    if not clusters:
        return

    table = Table(title="Clusters")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Size", style="yellow", no_wrap=True)
    table.add_column("Density", style="magenta", no_wrap=True)
    table.add_column("Top Relationships", style="blue")
    table.add_column("Members", style="green")
    table.add_column("Links Out", style="dim")

    for cluster in clusters:
        links = cross_community_connections(graph, cluster, assignment)
        table.add_row(
            str(cluster.id),
            str(cluster.size),
            f"{cluster.density:.3f}",
            ", ".join(f"{t} ({n})" for t, n in cluster.top_relationship_types),
            _preview(", ".join(cluster.entity_names)),
            ", ".join(f"{c}:{n}" for c, n in links.items()),
        )
    console.print(table)

    console.print(f"Average size: {summary.average_size:.2f}")
    console.print(f"Average density: {summary.average_density:.3f}")
    for bucket, count in summary.size_distribution.items():
        console.print(f"  {bucket}: {count}")


@graph_app.command("path")
def graph_path(
    files: list[Path] = typer.Argument(..., help="Extraction payload JSON files"),
    source: str = typer.Option(..., "--from", help="Start entity"),
    target: str = typer.Option(..., "--to", help="End entity"),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", help="Maximum path length in edges"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Shortest path between two entities, ignoring edge direction."""
    config = _load_config(config_file)
    graph = _build_graph(files)

    depth = max_depth if max_depth is not None else config.graph.max_path_depth
    path = graph.shortest_path(source, target, depth)
    if not path:
        console.print(f"[yellow]No path from '{source}' to '{target}' within {depth} hop(s)[/yellow]")
        raise typer.Exit(1)

    console.print(" -> ".join(entity.name for entity in path))


@graph_app.command("hops")
def graph_hops(
    files: list[Path] = typer.Argument(..., help="Extraction payload JSON files"),
    entity: str = typer.Option(..., "--entity", "-e", help="Start entity"),
    max_hops: Optional[int] = typer.Option(None, "--hops", help="Maximum hop distance"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Entities within a number of hops, grouped by distance."""
    config = _load_config(config_file)
    graph = _build_graph(files)

    hops = max_hops if max_hops is not None else config.graph.max_hops
    layers = graph.hop_layers(entity, hops)
    if not layers:
        console.print(f"[red]Entity not found: {entity}[/red]")
        raise typer.Exit(1)

    for distance, entities in layers.items():
        names = ", ".join(e.name for e in entities)
        console.print(f"{distance}: {names}")


if __name__ == "__main__":
    app()
