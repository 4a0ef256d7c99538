from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import typer

from cascade.agent import ExtractionAgent, load_agent
from cascade.config import get_settings
from cascade.domain.errors import ValidationError
from cascade.domain.models import CompositeRecord, Priority
from cascade.domain.validation import (
    format_national_id,
    is_valid_national_id,
    normalize_national_id,
    normalize_plate,
    plate_format,
)
from cascade.orchestrator import CascadePipeline
from cascade.reporter import print_statistics
from cascade.utils.logging import configure_logging

app = typer.Typer(help="Vehicle → plate → person lookup cascade.")


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    s = get_settings()
    ttl = f"{s.cache_ttl_seconds:g}s" if s.cache_ttl_seconds else "process lifetime"
    typer.echo(
        f"delays vehicle={s.vehicle_delay_seconds:g}s plate={s.plate_delay_seconds:g}s "
        f"person={s.person_delay_seconds:g}s | poll={s.poll_interval_seconds:g}s "
        f"attempts={s.max_attempts} backoff={s.retry_backoff_seconds:g}s "
        f"timeout={s.agent_timeout_seconds:g}s | cache ttl={ttl}"
    )
    audit = (
        f"postgres {s.db_user}@{s.db_host}:{s.db_port}/{s.db_name} table={s.audit_table}"
        if s.audit_backend == "postgres"
        else "memory"
    )
    typer.echo(f"env={s.app_env} log={s.log_level} | audit={audit}")


@app.command()
def check(value: str = typer.Argument(..., help="A plate or a national id (CPF).")) -> None:
    """
    Validate a plate or national id the way the pipeline does before fan-out.
    """
    digits = normalize_national_id(value)
    if len(digits) == 11 and digits == normalize_plate(value):
        if is_valid_national_id(digits):
            typer.echo(f"national id {format_national_id(digits)}: valid")
            return
        typer.echo(f"national id {digits}: invalid check digits", err=True)
        raise typer.Exit(code=1)

    kind = plate_format(value)
    plate = normalize_plate(value)
    if kind == "invalid":
        typer.echo(f"plate '{plate}': not a legacy or Mercosul plate", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"plate {plate} ({kind}): valid")


def _write_composites(composites: List[CompositeRecord], output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    payload = [c.model_dump(mode="json", by_alias=True) for c in composites]
    with output.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)


async def _run_search(
    agent: ExtractionAgent, search: dict, timeout: Optional[float], output: Optional[Path]
) -> bool:
    async with CascadePipeline(agent) as pipeline:
        pipeline.enqueue_vehicle_search(search)
        finished = await pipeline.run_until_idle(timeout=timeout)
        print_statistics(pipeline.get_statistics(), pipeline.get_eta_estimates())
        composites = pipeline.composites
        typer.echo(
            json.dumps(
                [c.model_dump(mode="json", by_alias=True) for c in composites],
                indent=2,
                ensure_ascii=False,
            )
        )
        if output is not None:
            _write_composites(composites, output)
            typer.echo(f"{len(composites)} composite(s) written to {output}")
    return finished


@app.command()
def run(
    agent: str = typer.Option(
        ..., "--agent", "-a", help="Agent import path, e.g. 'mypkg.agents:BrowserAgent'."
    ),
    model: str = typer.Option(..., "--model", "-m", help="Vehicle model."),
    color: str = typer.Option(..., "--color", "-c", help="Vehicle color."),
    year_start: int = typer.Option(..., "--year-start", "-y", help="First model year."),
    year_end: Optional[int] = typer.Option(None, "--year-end", help="Last model year."),
    priority: Priority = typer.Option(Priority.NORMAL, "--priority", "-p"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Give up after this many seconds (default: wait until idle)."
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Also write the composite records to this JSON file."
    ),
) -> None:
    """
    Run one search through the whole cascade and print what it found.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    search = {
        "model": model,
        "color": color,
        "year_start": year_start,
        "year_end": year_end,
        "priority": priority,
    }
    try:
        extraction_agent = load_agent(agent)
    except (ImportError, AttributeError, TypeError, ValueError) as exc:
        typer.echo(f"Could not load agent '{agent}': {exc}", err=True)
        raise typer.Exit(code=2) from exc

    typer.echo(f"Searching {model} {color} from {year_start} (agent={agent}).")
    try:
        finished = asyncio.run(_run_search(extraction_agent, search, timeout, output))
    except ValidationError as exc:
        typer.echo(f"Invalid search: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    if not finished:
        typer.echo("Timed out before the cascade went idle.", err=True)
        raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
