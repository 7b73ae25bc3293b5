"""flowstage Command Line Interface.

Entry point for the flowstage CLI tool.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import typer
from pydantic import ValidationError

from flowstage import __version__
from flowstage.core.config import FlowStageSettings, load_settings

if TYPE_CHECKING:
    from flowstage.contracts import FlowRecord
    from flowstage.core.repository import FlowRepository
    from flowstage.stages.sample import SampleStage

__all__ = [
    "app",
    "load_settings",  # Re-exported from config for convenience
]

app = typer.Typer(
    name="flowstage",
    help="flowstage: a transactional single-record flow-processing stage.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"flowstage version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """flowstage: a transactional single-record flow-processing stage."""
    from flowstage.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")
    ctx.obj = {"verbose": verbose, "json_logs": json_logs}

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def _load_or_exit(settings: Path | None) -> FlowStageSettings:
    """Load settings, printing errors and exiting with code 1 on failure."""
    if settings is None:
        return FlowStageSettings()
    try:
        return load_settings(settings.expanduser())
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _build_stage(config: FlowStageSettings) -> SampleStage:
    from flowstage.stages.sample import SampleStage

    return SampleStage(
        config.stage.options.model_dump(mode="json"),
        identifier=config.stage.identifier,
    )


def _build_repository(config: FlowStageSettings) -> FlowRepository:
    from flowstage.core.content_store import create_content_store
    from flowstage.core.repository import FlowRepository

    store = create_content_store(config.content_store.backend, config.content_store.base_path)
    return FlowRepository(store)


def _collect_inputs(paths: list[Path]) -> list[Path]:
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(p for p in path.rglob("*") if p.is_file()))
        elif path.is_file():
            files.append(path)
        else:
            typer.echo(f"Error: Input not found: {path}", err=True)
            raise typer.Exit(1)
    return files


def _write_routed(repository: FlowRepository, output_dir: Path) -> dict[str, list[str]]:
    """Write every relationship queue to ``output_dir/<relationship>/``, then drain it.

    Each record becomes two files: its content, named after the
    ``filename`` attribute (or the record id), and ``<name>.attributes.json``.
    A record whose content cannot be read still gets its attributes file.
    """
    from flowstage.contracts.content_store import IntegrityError
    from flowstage.core.logging import get_logger

    logger = get_logger(__name__)
    written: dict[str, list[str]] = {}
    for name in repository.relationship_names():
        target = output_dir / name
        target.mkdir(parents=True, exist_ok=True)
        used: set[str] = set()
        for record in repository.queued(name):
            file_name = _output_name(record, used)
            try:
                content = repository.read_bytes(record)
            except (KeyError, IntegrityError, OSError, ValueError) as e:
                logger.warning(
                    "Content unreadable; writing attributes only",
                    relationship=name,
                    record_id=str(record.record_id),
                    error=str(e),
                )
            else:
                (target / file_name).write_bytes(content)
            (target / f"{file_name}.attributes.json").write_text(
                json.dumps(dict(record.attributes), indent=2, sort_keys=True),
                encoding="utf-8",
            )
            written.setdefault(name, []).append(file_name)
        repository.drain(name)
    return written


def _output_name(record: FlowRecord, used: set[str]) -> str:
    """Pick a file name not yet used in this relationship's directory."""
    filename = record.get("filename")
    name = Path(filename).name if filename else str(record.record_id)
    if name in used:
        path = Path(name)
        name = f"{path.stem}.{record.record_id}{path.suffix}"
    used.add(name)
    return name


@app.command()
def run(
    ctx: typer.Context,
    inputs: list[Path] = typer.Argument(
        ...,
        help="Files or directories whose files are ingested as input records.",
    ),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file (defaults apply when omitted).",
    ),
    output_dir: Path | None = typer.Option(
        None,
        "--output-dir",
        "-o",
        help="Write routed records under this directory, one folder per relationship.",
    ),
    output_format: Literal["console", "json"] = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json' (structured JSON).",
    ),
) -> None:
    """Ingest files, run the stage until its input drains, report routing."""
    from flowstage.core.logging import configure_logging
    from flowstage.engine.runner import StageRunner

    config = _load_or_exit(settings)

    cli_options: dict[str, Any] = ctx.obj or {}
    if not cli_options.get("verbose"):
        configure_logging(
            json_output=config.logging.json_output or bool(cli_options.get("json_logs")),
            level=config.logging.level,
        )

    files = _collect_inputs(inputs)
    stage = _build_stage(config)
    repository = _build_repository(config)
    for path in files:
        repository.ingest(
            path.read_bytes(),
            {"filename": path.name, "path": str(path.parent)},
        )

    runner = StageRunner(stage, repository, max_workers=config.concurrency.max_workers)
    try:
        summary = runner.run(max_invocations=config.concurrency.max_invocations)
    except Exception as e:
        if output_format == "json":
            typer.echo(json.dumps({"event": "error", "error": str(e), "error_type": type(e).__name__}), err=True)
        else:
            typer.echo(f"Error: stage invocation failed: {e}", err=True)
        raise typer.Exit(1) from None

    written = _write_routed(repository, output_dir) if output_dir is not None else {}

    if output_format == "json":
        typer.echo(
            json.dumps(
                {
                    "event": "run_summary",
                    "stage": stage.identifier,
                    "ingested": len(files),
                    "invocations": summary.invocations,
                    "routed": summary.routed,
                    "pending": summary.pending,
                    "written": written,
                }
            )
        )
        return

    typer.echo(f"Stage '{stage.identifier}' processed {summary.invocations} invocation(s) over {len(files)} input(s)")
    for name, count in sorted(summary.routed.items()):
        typer.echo(f"  {name}: {count}")
    if summary.pending:
        typer.echo(f"  pending: {summary.pending}")
    if output_dir is not None:
        typer.echo(f"Routed records written to {output_dir}")


@app.command()
def validate(
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    show_config: bool = typer.Option(
        False,
        "--show-config",
        help="Print the resolved settings (explicit values plus defaults) as JSON.",
    ),
) -> None:
    """Validate settings and the stage's own configuration checks."""
    from flowstage.contracts import ValidationContext
    from flowstage.core.config import resolve_config

    config = _load_or_exit(settings)
    if show_config:
        typer.echo(json.dumps(resolve_config(config), indent=2))
    stage = _build_stage(config)
    results = stage.validate(ValidationContext(properties=config.stage.options.model_dump(mode="json")))

    invalid = [result for result in results if not result.valid]
    if invalid:
        typer.echo("Stage validation failed:", err=True)
        for result in invalid:
            typer.echo(f"  - {result.subject}: {result.explanation}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Configuration valid for stage '{stage.identifier}'.")


@app.command()
def describe(
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Show the stage's identifier, relationships and properties."""
    config = _load_or_exit(settings)
    stage = _build_stage(config)

    typer.echo(f"Identifier: {stage.identifier}")
    typer.echo(f"Description: {stage.description}")
    typer.echo(f"Event driven: {'yes' if stage.event_driven else 'no'}")
    typer.echo("Relationships:")
    for relationship in sorted(stage.relationships, key=lambda r: r.name):
        typer.echo(f"  {relationship.name:<10} {relationship.description}")
    typer.echo("Properties:")
    for descriptor in stage.property_descriptors():
        default = f" (default: {descriptor.default_value})" if descriptor.default_value is not None else ""
        typer.echo(f"  {descriptor.name}{default}")
        if descriptor.description:
            typer.echo(f"      {descriptor.description}")


if __name__ == "__main__":
    app()
