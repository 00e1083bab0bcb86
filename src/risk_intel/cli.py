"""Command-line entry points for adverse media screening."""

import asyncio
import json
import os
import re
from pathlib import Path
from typing import List, Optional

import typer
from rich import print as rprint
from rich.markup import escape

from .audit import build_audit_store
from .config import Settings, configure_logging, get_settings
from .errors import ClientError
from .models import ScanResult
from .report import build_docx, format_markdown
from .scan import ScanPipeline, build_pipeline

app = typer.Typer(help="Screen entities for adverse media in trusted news sources.")


def _settings(demo: bool) -> Settings:
    settings = get_settings()
    if demo:
        settings = settings.model_copy(update={"demo_mode": True})
    configure_logging(settings.log_level)
    return settings


def _to_json(result: ScanResult) -> str:
    return json.dumps(result.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2)


def _write_output(out_path: Path, result: ScanResult) -> None:
    suffix = out_path.suffix.lower()
    if suffix == ".docx":
        build_docx(result, out_path)
        return
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".json":
        out_path.write_text(_to_json(result), encoding="utf-8")
    else:
        out_path.write_text(format_markdown(result), encoding="utf-8")


def _slug(name: str) -> str:
    return re.sub(r"[^0-9a-z]+", "-", name.lower()).strip("-") or "entity"


def _read_names(path: Path) -> List[str]:
    names: List[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        name = line.split("#", 1)[0].strip()
        if name and name not in names:
            names.append(name)
    return names


async def _scan_many(pipeline: ScanPipeline, names: List[str], concurrency: int) -> List[ScanResult]:
    gate = asyncio.Semaphore(concurrency)

    async def _one(name: str) -> ScanResult:
        async with gate:
            return await pipeline.scan(name)

    return await asyncio.gather(*(_one(name) for name in names))


@app.command("scan")
def scan_command(
    query: str = typer.Argument(..., help="Company or individual to screen."),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Optional output file (.json, .md or .docx). Defaults to Markdown on stdout.",
    ),
    demo: bool = typer.Option(
        False, "--demo", help="Serve curated demo fixtures alongside live retrieval."
    ),
):
    """Run one scan: fetch -> classify -> cluster -> brief."""
    pipeline = build_pipeline(_settings(demo))
    try:
        result = asyncio.run(pipeline.scan(query))
    except ClientError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if result.advisory:
        rprint(f"[yellow]{result.advisory}[/yellow]")
    if out:
        _write_output(out, result)
        rprint(f"[cyan]Wrote output to {out}[/cyan]")
    else:
        typer.echo(format_markdown(result))


@app.command("batch")
def batch_command(
    names_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="Text file with one entity per line (# comments allowed)."
    ),
    outdir: Optional[Path] = typer.Option(
        None, "--outdir", "-o", help="Optional directory for per-entity outputs."
    ),
    output_format: str = typer.Option(
        "md", "--format", "-f", help="Output format when writing files: md or json.", case_sensitive=False
    ),
    concurrency: int = typer.Option(3, "--concurrency", "-c", help="Scans to run at once."),
    demo: bool = typer.Option(False, "--demo", help="Serve curated demo fixtures."),
):
    """Re-scan a watchlist of entities."""
    if concurrency < 1:
        raise typer.BadParameter("concurrency must be >= 1.")
    fmt = output_format.lower()
    if fmt not in {"md", "json"}:
        raise typer.BadParameter("format must be 'md' or 'json'.")
    names = _read_names(names_file)
    if not names:
        raise typer.BadParameter("names file contains no entities.")

    pipeline = build_pipeline(_settings(demo))
    results = asyncio.run(_scan_many(pipeline, names, concurrency))

    for index, result in enumerate(results, start=1):
        adverse = len(result.adverse_clusters)
        colour = "red" if adverse else "green"
        rprint(f"[{colour}]{escape(result.query)}: {adverse} adverse / {len(result.clusters)} cluster(s)[/{colour}]")
        if outdir:
            target = outdir / f"{index:03d}-{_slug(result.query)}.{fmt}"
            _write_output(target, result)
    if outdir:
        rprint(f"[cyan]Wrote {len(results)} file(s) to {outdir}[/cyan]")


@app.command("history")
def history_command(
    limit: int = typer.Option(20, "--limit", "-n", help="Most recent decisions to show."),
):
    """Show recorded analyst decisions, newest first."""
    store = build_audit_store(_settings(False))
    records = store.list()[:limit]
    if not records:
        rprint("[yellow]No audit records.[/yellow]")
        return
    for record in records:
        rprint(
            f"{record.timestamp.isoformat()}  {record.action.value:<8} {record.user} "
            f"{escape(f'[{record.query}]')} {record.article_url} - {escape(record.reason)}"
        )


@app.command("serve")
def serve_command(
    host: str = typer.Option(os.getenv("RISK_INTEL_HOST", "0.0.0.0"), "--host"),
    port: int = typer.Option(int(os.getenv("PORT", "8080")), "--port"),
    reload: bool = typer.Option(False, "--reload"),
):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    configure_logging(get_settings().log_level)
    uvicorn.run("risk_intel.server:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
