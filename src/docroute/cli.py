"""docroute CLI."""

import json
import logging
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table as RichTable

from docroute.config import (
    HYBRID_OFF,
    build_filter_config,
    build_hybrid_config,
    parse_page_selection,
    settings,
)
from docroute.errors import ConfigurationError, ProcessingError
from docroute.hybrid.registry import STRATEGIES, default_registry
from docroute.models import ContentObject
from docroute.pipeline import HybridOrchestrator, PdfDocument

app = typer.Typer(
    name="docroute",
    help="Extract semantic content from PDFs, routing hard pages to a document-AI backend",
    add_completion=False,
)
console = Console()

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def dump_pages(
    document_name: str,
    pages: list[list[ContentObject]],
    file_hash: Optional[str] = None,
) -> dict:
    """JSON-ready dump of the merged content model."""
    return {
        "document": document_name,
        "sha256": file_hash,
        "page_count": len(pages),
        "pages": [
            {
                "page": index + 1,
                "contents": [obj.model_dump(mode="json") for obj in contents],
            }
            for index, contents in enumerate(pages)
        ],
    }


def _summary_table(pages: list[list[ContentObject]]) -> RichTable:
    table = RichTable(title="Extracted content")
    table.add_column("Page", justify="right")
    table.add_column("Objects", justify="right")
    table.add_column("Source")
    table.add_column("Kinds")
    for index, contents in enumerate(pages):
        kinds: dict[str, int] = {}
        for obj in contents:
            kind = getattr(obj, "kind", type(obj).__name__)
            name = str(getattr(kind, "value", kind))
            kinds[name] = kinds.get(name, 0) + 1
        sources = sorted({obj.source for obj in contents}) or ["-"]
        table.add_row(
            str(index + 1),
            str(len(contents)),
            ", ".join(sources),
            ", ".join(f"{k}={v}" for k, v in sorted(kinds.items())) or "-",
        )
    return table


@app.command()
def process(
    pdf_path: Path = typer.Argument(..., help="Path to PDF file to process"),
    output_dir: Path = typer.Option(Path("./output"), help="Output directory"),
    hybrid: Optional[str] = typer.Option(
        None, "--hybrid", help="Hybrid backend: off, docling, azure (default from settings)"
    ),
    hybrid_mode: Optional[str] = typer.Option(None, "--hybrid-mode", help="Triage mode: auto or full"),
    hybrid_url: Optional[str] = typer.Option(None, "--hybrid-url", help="Backend endpoint URL"),
    hybrid_timeout: Optional[int] = typer.Option(
        None, "--hybrid-timeout", help="Backend HTTP timeout in milliseconds"
    ),
    hybrid_fallback: Optional[bool] = typer.Option(
        None,
        "--hybrid-fallback/--no-hybrid-fallback",
        help="Process pages locally when the backend fails",
    ),
    hybrid_api_key: Optional[str] = typer.Option(
        None, "--hybrid-api-key", help="Backend API key (AZURE_API_KEY is used if omitted)"
    ),
    pages: Optional[str] = typer.Option(None, "--pages", help="Pages to process, e.g. '1,3,5-7'"),
    triage_log: bool = typer.Option(
        True, "--triage-log/--no-triage-log", help="Write <name>_triage.json to the output dir"
    ),
    hybrid_ocr: Optional[str] = typer.Option(None, "--hybrid-ocr", hidden=True),
) -> None:
    """Process a single PDF document."""
    configure_logging(settings.log_level)

    try:
        hybrid_config = build_hybrid_config(
            backend=hybrid,
            mode=hybrid_mode,
            url=hybrid_url,
            timeout_ms=hybrid_timeout,
            fallback=hybrid_fallback,
            api_key=hybrid_api_key,
            hybrid_ocr=hybrid_ocr,
        )
        filter_config = build_filter_config()
        page_selection = parse_page_selection(pages)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=2)

    backend_name = hybrid_config.backend.value if hybrid_config.backend else HYBRID_OFF
    console.print(f"[bold blue]Processing:[/bold blue] {pdf_path}")
    console.print(f"[dim]Backend: {backend_name}, mode: {hybrid_config.mode.value}, output: {output_dir}[/dim]")

    orchestrator = HybridOrchestrator(
        hybrid_config,
        filter_config=filter_config,
        triage_log=triage_log,
    )
    try:
        with PdfDocument.open(pdf_path) as document:
            result = orchestrator.process(document, page_selection, output_dir=output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            output_path = output_dir / f"{document.stem}.json"
            output_path.write_text(
                json.dumps(
                    dump_pages(document.name, result, document.file_hash()),
                    indent=2,
                    ensure_ascii=False,
                ),
                encoding="utf-8",
            )
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=2)
    except FileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except fitz.FileDataError as e:
        console.print(f"[bold red]Unreadable PDF:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except ProcessingError as e:
        console.print(f"[bold red]Processing failed:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)
    finally:
        default_registry.shutdown()

    console.print(_summary_table(result))
    console.print(f"[green]Wrote[/green] {output_path}")


@app.command()
def backends() -> None:
    """List supported hybrid backends."""
    table = RichTable(title="Hybrid backends")
    table.add_column("Name")
    table.add_column("Default URL")
    table.add_column("API key")
    table.add_column("Description")
    for backend_type, strategy in STRATEGIES.items():
        table.add_row(
            backend_type.value,
            strategy.default_url or "(required)",
            "required" if strategy.requires_api_key else "optional",
            strategy.description,
        )
    console.print(table)


if __name__ == "__main__":
    app()
