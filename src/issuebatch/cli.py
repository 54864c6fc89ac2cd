# src/issuebatch/cli.py
"""issuebatch Command Line Interface.

Entry point for the issuebatch CLI tool.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from issuebatch import __version__
from issuebatch.contracts import InputValidationError, ManifestNotFoundError
from issuebatch.core.config import IssueBatchSettings, load_settings

if TYPE_CHECKING:
    from issuebatch.core.manifest import ManifestStore
    from issuebatch.engine import BulkOrchestrator

__all__ = [
    "app",
    "load_settings",  # Re-exported from config for convenience
]

app = typer.Typer(
    name="issuebatch",
    help="issuebatch: Bulk hierarchical issue creation with resumable retry.",
    no_args_is_help=True,
)


@dataclass
class _Options:
    """Global options captured by the app callback."""

    verbose: bool = False
    json_logs: bool = False


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"issuebatch version {__version__}")
        raise typer.Exit()


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(1)


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            raise _fail(f"Error: .env file not found: {env_file}")
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


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
        exists=False,  # Existence checked in _load_dotenv for a clearer message
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
    """issuebatch: Bulk hierarchical issue creation with resumable retry."""
    from issuebatch.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")
    ctx.obj = _Options(verbose=verbose, json_logs=json_logs)

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )


def _load_config(ctx: typer.Context, settings: str) -> IssueBatchSettings:
    """Load settings and apply their logging section (CLI flags win)."""
    from issuebatch.core.logging import configure_logging

    settings_path = Path(settings).expanduser()
    try:
        config = load_settings(settings_path)
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {settings}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None

    options = ctx.obj if isinstance(ctx.obj, _Options) else _Options()
    configure_logging(
        json_output=options.json_logs or config.logging.json_output,
        level="DEBUG" if options.verbose else config.logging.level,
    )
    return config


def _read_records(input_path: Path) -> list[dict[str, Any]]:
    """Read the input file: a JSON array of objects."""
    try:
        data = json.loads(input_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise _fail(f"Error: Input file not found: {input_path}") from None
    except json.JSONDecodeError as e:
        raise _fail(f"Error: {input_path} is not valid JSON: {e}") from None

    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise _fail(f"Error: {input_path} must contain a JSON array of objects")
    return data


@contextmanager
def _manifest_store(config: IssueBatchSettings) -> Iterator[ManifestStore]:
    from issuebatch.core.manifest import ManifestDB, ManifestStore

    db = ManifestDB.from_url(config.manifest.url)
    try:
        yield ManifestStore(db, retention=timedelta(hours=config.manifest.retention_hours))
    finally:
        db.close()


@contextmanager
def _orchestrator(config: IssueBatchSettings) -> Iterator[BulkOrchestrator]:
    """Wire an orchestrator from settings, closing its resources afterwards."""
    from issuebatch.clients import BulkCallWrapper, TrackerHTTPClient
    from issuebatch.engine import BulkOrchestrator, RetryConfig, RetryManager
    from issuebatch.plugins import FieldMapBuilder

    client = TrackerHTTPClient(
        config.tracker.base_url,
        token=config.tracker.token,
        timeout=config.tracker.bulk_timeout_seconds,
        retry_manager=RetryManager(RetryConfig.from_settings(config.retry)),
    )
    try:
        with _manifest_store(config) as store:
            yield BulkOrchestrator(
                FieldMapBuilder.from_settings(config.builder, parent_field=config.hierarchy.parent_field),
                BulkCallWrapper(
                    client,
                    timeout=config.tracker.bulk_timeout_seconds,
                    endpoint=config.tracker.bulk_endpoint,
                ),
                store,
                uid_field=config.hierarchy.uid_field,
                parent_field=config.hierarchy.parent_field,
                max_workers=config.concurrency.max_workers,
            )
    finally:
        client.close()


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2))


_SETTINGS_OPTION = typer.Option(..., "--settings", "-s", help="Path to settings YAML file.")


@app.command()
def create(
    ctx: typer.Context,
    input_file: Path = typer.Argument(..., help="JSON array of records to create."),
    settings: str = _SETTINGS_OPTION,
) -> None:
    """Create every record, parents before children, and print the run summary."""
    config = _load_config(ctx, settings)
    records = _read_records(input_file)

    with _orchestrator(config) as orchestrator:
        try:
            summary = orchestrator.run(records)
        except InputValidationError as e:
            raise _fail(f"Error: {e}") from None

    _echo_json(summary.to_dict())


@app.command()
def retry(
    ctx: typer.Context,
    input_file: Path = typer.Argument(..., help="The original input (corrected rows allowed)."),
    manifest_id: str = typer.Option(..., "--manifest-id", "-m", help="Manifest of the run to retry."),
    settings: str = _SETTINGS_OPTION,
) -> None:
    """Resubmit only the failed rows of a previous run."""
    config = _load_config(ctx, settings)
    records = _read_records(input_file)

    with _orchestrator(config) as orchestrator:
        try:
            summary = orchestrator.retry(records, manifest_id)
        except (InputValidationError, ManifestNotFoundError) as e:
            raise _fail(f"Error: {e}") from None

    _echo_json(summary.to_dict())


@app.command()
def manifest(
    ctx: typer.Context,
    manifest_id: str = typer.Argument(..., help="Manifest id (bulk-...)."),
    settings: str = _SETTINGS_OPTION,
) -> None:
    """Print a stored manifest."""
    config = _load_config(ctx, settings)

    with _manifest_store(config) as store:
        lookup = store.get(manifest_id)

    if lookup.manifest is None:
        raise _fail(f"Error: {ManifestNotFoundError(manifest_id)}")
    _echo_json(lookup.manifest.to_dict())


@app.command()
def purge(
    ctx: typer.Context,
    settings: str = _SETTINGS_OPTION,
) -> None:
    """Delete manifests whose retention window has passed."""
    from issuebatch.core.manifest import ManifestDB, ManifestPurger

    config = _load_config(ctx, settings)

    with ManifestDB.from_url(config.manifest.url) as db:
        result = ManifestPurger(db).purge_expired()

    typer.echo(f"Purged {result.deleted_count} expired manifest(s)")


if __name__ == "__main__":
    app()
