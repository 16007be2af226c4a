#!/usr/bin/env python3
"""
RAG Playground - upload text, ask questions, get cited answers
"""

import asyncio
import logging
import sys
from typing import Dict, Any, Optional

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ragplay.config import load_config, load_env_file, setup_logging
from ragplay.errors import RAGPlaygroundError
from ragplay.health import build_health_report
from ragplay.ingestion import DocumentIngestor, IngestionResult, TextChunker
from ragplay.models import LLMManager
from ragplay.rag import AnswerGenerator, CohereReranker, PineconeVectorStore, QueryOrchestrator, QueryResult

logger = logging.getLogger(__name__)


def error_payload(error: Exception) -> Dict[str, Any]:
    """Structured failure payload for any exception reaching the CLI."""
    if isinstance(error, RAGPlaygroundError):
        return error.to_dict()
    return {"success": False, "error": "Request failed", "message": str(error)}


class RAGPlaygroundSystem:
    """Main RAG Playground system class.

    Provider clients are built once here and injected into the ingestion
    and query pipelines.
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.console = Console()

        self.vector_store = PineconeVectorStore(config.get("pinecone", {}) or {})
        self.reranker = CohereReranker(config.get("reranker", {}) or {})
        self.llm_manager = LLMManager(config.get("llm", {}) or {})
        self.chunker = TextChunker(config.get("chunking", {}) or {})

        self.generator = AnswerGenerator(config.get("llm", {}) or {}, self.llm_manager)
        self.orchestrator = QueryOrchestrator(
            self.vector_store, self.reranker, self.generator, config.get("query", {}) or {}
        )
        self.ingestor = DocumentIngestor(config.get("ingestion", {}) or {}, self.chunker, self.vector_store)

        self.debug_mode = (config.get("debug") or {}).get("enabled", False)

    async def query(self, user_query: str, top_k: Optional[int] = None, top_n: Optional[int] = None) -> QueryResult:
        """Answer a question, showing a spinner while the pipeline runs."""
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True,
        ) as progress:
            progress.add_task("Retrieving, reranking and generating...", total=None)
            return await self.orchestrator.run(user_query, top_k=top_k, top_n=top_n)

    def display_result(self, result: QueryResult, debug: bool = False):
        """Display query results in a formatted way."""
        if result.no_documents:
            self.console.print(Panel(result.answer, title="[bold yellow]No documents[/bold yellow]",
                                     border_style="yellow"))
            return

        self.console.print(Panel(result.answer, title="[bold blue]Answer[/bold blue]", border_style="blue"))

        if result.degraded:
            reasons = []
            if result.rerank_fallback:
                reasons.append("reranker unavailable, sources in retrieval order")
            if result.generation_error:
                reasons.append(f"generation degraded ({result.generation_error.value})")
            self.console.print(f"[yellow]⚠ Lower confidence: {'; '.join(reasons)}[/yellow]")

        if result.sources:
            sources_table = Table(title="Sources")
            sources_table.add_column("#", style="cyan")
            sources_table.add_column("Title", style="white")
            sources_table.add_column("Section", style="magenta")
            sources_table.add_column("Score", style="green")
            cited = {citation.number for citation in result.citations}
            for source in result.sources:
                marker = "*" if source.number in cited else ""
                sources_table.add_row(
                    f"{source.number}{marker}",
                    source.title,
                    source.section,
                    f"{source.relevance_score:.4f}",
                )
            self.console.print(sources_table)

        timing = result.timing.to_dict()
        cost = result.cost_estimate.to_dict() if result.cost_estimate else {}
        self.console.print(
            f"[dim]Model: {result.model} | Total: {timing.get('totalMs', 0):.0f}ms | "
            f"Tokens: {result.tokens.total if result.tokens else 0} | "
            f"Cost: ${cost.get('totalCost', '0.000000')}[/dim]"
        )

        if debug:
            debug_table = Table(title="Debug Information")
            debug_table.add_column("Stage", style="cyan")
            debug_table.add_column("Duration (ms)", style="white")
            for stage, duration in timing.items():
                debug_table.add_row(stage, f"{duration:.2f}")
            debug_table.add_row("chunksRetrieved", str(result.chunks_retrieved))
            self.console.print(debug_table)

    def display_ingestion_result(self, result: IngestionResult):
        """Display ingestion results in a formatted table."""
        table = Table(title="Ingestion Results")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")

        table.add_row("Title", result.title)
        table.add_row("Characters", str(result.original_length))
        table.add_row("Chunks Created", str(result.chunks_created))
        table.add_row("Vectors Upserted", str(result.vectors_upserted))
        table.add_row("Index", result.index_name)
        table.add_row("Embedding Model", result.embedding_model)
        table.add_row("Chunking", f"{result.chunking_ms:.2f}ms")
        table.add_row("Upsert", f"{result.upsert_ms:.2f}ms")
        table.add_row("Total Time", f"{result.total_ms:.2f}ms")

        self.console.print(table)

    def show_stats(self):
        """Display vector index statistics."""
        stats = self.vector_store.stats()

        table = Table(title="Vector Index Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")

        table.add_row("Index Name", stats["index_name"])
        table.add_row("Embedding Model", stats["embedding_model"])
        table.add_row("Total Vectors", str(stats["total_vector_count"]))
        table.add_row("Dimension", str(stats["dimension"]))
        for namespace, count in stats["namespaces"].items():
            table.add_row(f"Namespace '{namespace or 'default'}'", str(count))

        self.console.print(table)

    def show_documents(self):
        """Display uploaded documents grouped by title."""
        documents = self.vector_store.list_documents()
        if not documents:
            self.console.print("[yellow]No documents uploaded yet.[/yellow]")
            return

        table = Table(title="Uploaded Documents")
        table.add_column("Title", style="cyan")
        table.add_column("Source", style="white")
        table.add_column("Chunks", style="magenta")
        for document in documents:
            table.add_row(document["title"], document["source"], str(document["chunksCount"]))

        self.console.print(table)

    async def interactive_mode(self):
        """Run the system in interactive mode."""
        self.console.print(Panel(
            "[bold blue]RAG Playground[/bold blue]\n"
            "Ask questions about the documents you uploaded.\n"
            "Type 'quit' to exit, 'stats' for index statistics, 'help' for commands.",
            border_style="blue"
        ))

        while True:
            try:
                query = click.prompt("\nQuery")

                if query.lower() in ['quit', 'exit', 'q']:
                    break
                elif query.lower() == 'stats':
                    self.show_stats()
                    continue
                elif query.lower() == 'documents':
                    self.show_documents()
                    continue
                elif query.lower() == 'help':
                    self.console.print("""
                    [bold]Available Commands:[/bold]
                    • Ask any question about your uploaded documents
                    • 'documents' - List uploaded documents
                    • 'stats' - Show index statistics
                    • 'help' - Show this help message
                    • 'quit' - Exit the system
                    """)
                    continue
                elif not query.strip():
                    continue

                result = await self.query(query)
                self.display_result(result, debug=self.debug_mode)

            except (KeyboardInterrupt, click.Abort):
                self.console.print("\n[yellow]Exiting...[/yellow]")
                break
            except RAGPlaygroundError as e:
                self.console.print(f"[red]{e.error_label}: {e.message}[/red]")
            except Exception as e:
                logger.error(f"Interactive query failed: {e}")
                self.console.print(f"[red]Error: {e}[/red]")


def fail(console: Console, error: Exception):
    """Print the structured error payload and exit non-zero."""
    console.print_json(data=error_payload(error))
    sys.exit(1)


@click.group()
@click.option('--config', '-c', default='config/config.yaml', help='Configuration file path')
@click.option('--debug', '-d', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, config, debug):
    """RAG Playground CLI."""
    # Load environment variables first
    load_env_file()

    try:
        loaded = load_config(config)
    except FileNotFoundError:
        click.echo(f"❌ Configuration file not found: {config}", err=True)
        sys.exit(1)
    except (yaml.YAMLError, ValueError) as e:
        click.echo(f"❌ Error parsing configuration file: {e}", err=True)
        sys.exit(1)

    ctx.ensure_object(dict)
    ctx.obj['config'] = loaded
    ctx.obj['debug'] = debug

    setup_logging(loaded)

    if debug:
        loaded['debug'] = {**(loaded.get('debug') or {}), 'enabled': True}


@cli.command()
@click.argument('file_path', required=False, type=click.Path(exists=True, dir_okay=False))
@click.option('--text', '-t', help='Upload text directly instead of a file')
@click.option('--title', help='Document title used in citations')
@click.option('--source', help='Where the text came from')
@click.pass_context
def upload(ctx, file_path, text, title, source):
    """Chunk a document and store it in the vector index."""
    system = RAGPlaygroundSystem(ctx.obj['config'])

    if not file_path and text is None:
        raise click.UsageError("Provide a FILE_PATH or --text")

    async def run_upload():
        if file_path:
            return await system.ingestor.ingest_file(file_path, title=title, source=source)
        return await system.ingestor.ingest_text(text, title=title, source=source)

    try:
        result = asyncio.run(run_upload())
    except Exception as e:
        logger.error(f"Upload failed: {e}")
        fail(system.console, e)

    system.display_ingestion_result(result)
    system.console.print(f"[green]✅ Successfully processed {result.chunks_created} chunks[/green]")


@cli.command()
@click.argument('query')
@click.option('--top-k', '-k', type=int, default=None, help='Candidates to retrieve')
@click.option('--top-n', '-n', type=int, default=None, help='Candidates to keep after reranking')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw response payload')
@click.pass_context
def query(ctx, query, top_k, top_n, as_json):
    """Ask a question about the uploaded documents."""
    system = RAGPlaygroundSystem(ctx.obj['config'])

    try:
        result = asyncio.run(system.query(query, top_k=top_k, top_n=top_n))
    except Exception as e:
        fail(system.console, e)

    if as_json:
        system.console.print_json(data=result.to_dict())
    else:
        system.display_result(result, debug=ctx.obj['debug'])


@cli.command()
@click.pass_context
def stats(ctx):
    """Show vector index statistics."""
    system = RAGPlaygroundSystem(ctx.obj['config'])
    try:
        system.show_stats()
    except Exception as e:
        fail(system.console, e)


@cli.command()
@click.pass_context
def documents(ctx):
    """List uploaded documents."""
    system = RAGPlaygroundSystem(ctx.obj['config'])
    try:
        system.show_documents()
    except Exception as e:
        fail(system.console, e)


@cli.command()
@click.option('--yes', '-y', is_flag=True, help='Skip the confirmation prompt')
@click.pass_context
def clear(ctx, yes):
    """Delete every vector in the index."""
    if not yes:
        click.confirm("This removes all uploaded documents. Continue?", abort=True)

    system = RAGPlaygroundSystem(ctx.obj['config'])
    try:
        system.vector_store.clear()
    except Exception as e:
        fail(system.console, e)
    system.console.print("[green]✅ All documents cleared from the index[/green]")


@cli.command()
@click.pass_context
def health(ctx):
    """Show which providers are configured."""
    console = Console()
    report = build_health_report(ctx.obj['config'])
    console.print_json(data=report)
    if report["status"] != "ok":
        console.print(f"[yellow]⚠ {report['warning']}[/yellow]")


@cli.command()
@click.pass_context
def interactive(ctx):
    """Start interactive query mode."""
    system = RAGPlaygroundSystem(ctx.obj['config'])
    asyncio.run(system.interactive_mode())


if __name__ == "__main__":
    cli()
