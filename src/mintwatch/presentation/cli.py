import asyncio, os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..adapters.kv_json import JsonFileStore
from ..adapters.manifest_jsonl import JSONLJournal
from ..adapters.parquet_sink import write_aggregates_parquet
from ..adapters.rpc_httpx import HttpxRPC
from ..application.ingestion import IngestionEngine
from ..application.utils import _now_ts_str
from ..config import Settings
from ..domain.value_types import Address
from ..exceptions import MintwatchError
from ..logging import logger

app = typer.Typer(help="mintwatch: MintExecuted aggregator and read API.")
console = Console()


def _settings() -> Settings:
    settings = Settings()
    logger.setLevel(settings.log_level.upper())
    return settings

def _engine(settings: Settings) -> tuple[IngestionEngine, HttpxRPC]:
    rpc = HttpxRPC(settings.rpc_url, timeout_s=settings.rpc_timeout_s)
    engine = IngestionEngine(
        rpc=rpc,
        store=JsonFileStore(str(settings.data_dir)),
        address=Address(settings.contract_address),
        start_block=settings.start_block,
        max_block_range=settings.max_block_range,
        journal=JSONLJournal(str(settings.journal_path)) if settings.journal_path else None,
    )
    return engine, rpc


@app.command()
def serve():
    """Catch up, keep polling, and serve GET /mintEvents."""
    import uvicorn
    from .api import create_app

    settings = _settings()

    async def main():
        engine, rpc = _engine(settings)
        try:
            await engine.load()
            api = create_app(engine.aggregates, settings, engine=engine)
            server = uvicorn.Server(uvicorn.Config(api, host=settings.host, port=settings.port, log_level="info"))
            logger.info(f"API is running on http://{settings.host}:{settings.port}")
            await server.serve()
        finally:
            await rpc.aclose()

    asyncio.run(main())


@app.command()
def sync():
    """Run a single catch-up cycle against the chain head and exit."""
    settings = _settings()

    async def main():
        engine, rpc = _engine(settings)
        try:
            await engine.load()
            return await engine.catch_up()
        finally:
            await rpc.aclose()

    try:
        rec = asyncio.run(main())
    except MintwatchError as e:
        console.print(f"[red]sync failed[/]: {e.message}")
        raise typer.Exit(code=1)
    console.print(
        f"[bold]done[/]: blocks {rec.from_block:,}-{rec.to_block:,} • "
        f"[green]applied[/]={rec.applied}  [yellow]duplicates[/]={rec.duplicates}  "
        f"[red]malformed[/]={rec.malformed}  (logs={rec.logs})"
    )


def _load_snapshot(settings: Settings) -> list[dict[str, str]]:
    async def main():
        engine, rpc = _engine(settings)
        try:
            await engine.load()
        finally:
            await rpc.aclose()
        return engine.aggregates.snapshot()
    return asyncio.run(main())


@app.command()
def show(top: int = typer.Option(20, help="Rows to print")):
    """Print the persisted aggregate, largest minters first."""
    rows = _load_snapshot(_settings())
    table = Table(title=f"MintExecuted totals ({len(rows)} users)")
    table.add_column("#", justify="right")
    table.add_column("user")
    table.add_column("MORPHEUS", justify="right")
    table.add_column("TitanX", justify="right")
    for i, r in enumerate(rows[:top], start=1):
        table.add_row(str(i), r["user"], r["morpheusAmount"], r["titanXAmount"])
    console.print(table)


@app.command()
def export(out: Optional[Path] = typer.Argument(None, help="Parquet output path")):
    """Write the persisted aggregate to a Parquet file."""
    settings = _settings()
    path = str(out) if out else os.path.join(str(settings.data_dir), f"mint_totals_{_now_ts_str()}.parquet")
    n = write_aggregates_parquet(_load_snapshot(settings), path)
    console.print(f"💾 wrote {n} rows → {path}")


if __name__ == "__main__":
    app()
