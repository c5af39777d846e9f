"""Command line interface for running blobnet scenarios and inspecting content."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from . import archive, blobindex
from .bootstrap import start_network
from .config import load_config
from .digest import Link, format_digest
from .errors import IntegrityError, ScenarioError
from .harness import ScenarioReport, run_upload_scenario
from .printer import format_index_shards, format_query_result

app = typer.Typer(help="CLI for blobnet content publication and discovery")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)"),
) -> None:
    """blobnet CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("run")
def run(
    size: int = typer.Option(256, help="Bytes of random content to upload"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Disable indexing service caches"),
    attempts: Optional[int] = typer.Option(None, help="Query attempts before giving up"),
    interval: Optional[float] = typer.Option(None, help="Seconds between query attempts"),
    config: Optional[Path] = typer.Option(None, help="Path to a YAML config file"),
    filter_by_space: bool = typer.Option(False, "--filter", help="Restrict the query to the space"),
) -> None:
    """
    Run the upload scenario against an in-process network.

    Generates random content, stores it as one shard, indexes it, publishes
    the index claim and queries it back, then prints the query results.

    Example:
        blobnet run --size 256
        blobnet run --no-cache --attempts 20 --interval 0.1
    """
    cfg = load_config(str(config) if config else None)
    if attempts is not None:
        cfg.query.attempts = attempts
    if interval is not None:
        cfg.query.interval = interval

    try:
        report = asyncio.run(_run(cfg, size, no_cache, filter_by_space))
    except ScenarioError as exc:
        typer.secho(f"{exc.stage.value} failed: {exc.cause}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Space:  {report.space}")
    typer.echo(f"Root:   {report.root} ({format_digest(report.root.digest)})")
    typer.echo(f"Shard:  {format_digest(report.shard)}")
    typer.echo(f"Index:  {report.index_link}")
    typer.echo(f"Query converged after {report.attempts} attempt(s)")
    typer.echo(format_query_result(report.result))


async def _run(cfg, size: int, no_cache: bool, filter_by_space: bool) -> ScenarioReport:
    network = await start_network(cfg, no_cache=no_cache)
    try:
        return await run_upload_scenario(network, size=size, filter_by_space=filter_by_space)
    finally:
        await network.close()


@app.command("digest")
def digest(path: Path) -> None:
    """Print the sha2-256 multihash and raw link of a file."""
    if not path.is_file():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    data = path.read_bytes()
    link = Link.of(data)
    typer.echo(f"{format_digest(link.digest)}\t{link}")


@app.command("index")
def index(
    path: Path,
    root: Optional[str] = typer.Option(None, help="Content link; defaults to the archive root"),
) -> None:
    """
    Build the index of a shard archive and print its identifier and layout.

    Example:
        blobnet index shard.car --root bafkrei...
    """
    if not path.is_file():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    data = path.read_bytes()
    try:
        if root is not None:
            content = Link.parse(root)
        else:
            roots, _ = archive.decode(data)
            if not roots:
                typer.secho("Archive has no root; pass --root", fg=typer.colors.RED)
                raise typer.Exit(code=1)
            content = roots[0]
        built = blobindex.from_shard_archives(content, [data])
    except (ValueError, IntegrityError) as exc:
        typer.secho(f"Cannot index {path}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Index:   {built.link()}")
    typer.echo(f"Content: {built.content}")
    typer.echo(f"Shards ({len(built.shards)}):")
    for line in format_index_shards(built):
        typer.echo(line)


if __name__ == "__main__":
    app()
