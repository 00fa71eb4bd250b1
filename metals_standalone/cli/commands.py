"""CLI commands for metals-standalone.

``run`` starts Metals for a Scala project, enables its MCP
server and keeps it alive until Ctrl+C; ``init`` writes the config file.
"""

import asyncio
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console

from metals_standalone import __logo__, __version__
from metals_standalone.cli.shared.logging_utils import configure_console_logging, ensure_rotating_log_file
from metals_standalone.utils.exceptions import (
    InitializationError,
    MetalsStandaloneError,
    ServerExitedError,
    TimeoutError as OperationTimeoutError,
    classify_exception,
)

app = typer.Typer(
    name="metals-standalone",
    help=f"{__logo__} metals-standalone - Metals language server with MCP, no editor required",
    no_args_is_help=True,
)

console = Console()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INIT_FAILED = 2
EXIT_SERVER_EXITED = 3
EXIT_TIMEOUT = 4


def exit_code_for(exc: BaseException) -> int:
    """Map a failure to the process exit code."""
    if isinstance(exc, OperationTimeoutError):
        return EXIT_TIMEOUT
    if isinstance(exc, InitializationError):
        return EXIT_INIT_FAILED
    if isinstance(exc, ServerExitedError):
        return EXIT_SERVER_EXITED
    return EXIT_FAILURE


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} metals-standalone v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", callback=version_callback, is_eager=True
    ),
):
    """metals-standalone - Metals MCP server without an IDE."""


@app.command()
def init(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file (default: ~/.metals-standalone/config.json)"),
):
    """Write a config file with every setting spelled out."""
    from metals_standalone.config.loader import get_config_path, load_config, save_config
    from metals_standalone.config.schema import Config

    config_path = config_file or get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        console.print("  [bold]y[/bold] = overwrite with defaults (existing values will be lost)")
        console.print("  [bold]N[/bold] = refresh config, keeping existing values and adding new fields")
        if typer.confirm("Overwrite?"):
            save_config(Config(), config_path)
            console.print(f"[green]✓[/green] Config reset to defaults at {config_path}")
        else:
            try:
                config = load_config(config_path)
            except ValueError as e:
                console.print(f"[red]{e}[/red]")
                raise typer.Exit(EXIT_FAILURE)
            save_config(config, config_path)
            console.print(f"[green]✓[/green] Config refreshed at {config_path} (existing values preserved)")
    else:
        save_config(Config(), config_path)
        console.print(f"[green]✓[/green] Created config at {config_path}")


@app.command()
def run(
    project_path: Path = typer.Argument(Path("."), help="Path to Scala project directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file (default: ~/.metals-standalone/config.json)"),
):
    """Start Metals with its MCP server enabled for PROJECT_PATH."""
    from metals_standalone.app import MetalsStandalone
    from metals_standalone.config.loader import load_config

    configure_console_logging(verbose)
    log_path = ensure_rotating_log_file("metals-standalone", level="DEBUG" if verbose else "INFO")
    logger.debug("Logging to {}", log_path)

    try:
        config = load_config(config_file)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(EXIT_FAILURE)

    runner = MetalsStandalone(project_path.expanduser().absolute(), config, console)
    try:
        asyncio.run(runner.run())
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted[/dim]")
        raise typer.Exit(EXIT_OK)
    except MetalsStandaloneError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        logger.debug("Failure details: {}", e.to_dict())
        raise typer.Exit(exit_code_for(e))
    except Exception as e:
        code, category = classify_exception(e)
        logger.exception("Unexpected error ({}, {})", code, category.value)
        console.print(f"[red]❌ Unexpected error: {e}[/red]")
        raise typer.Exit(EXIT_FAILURE)


if __name__ == "__main__":
    app()
