"""Typer application and CLI entry point for precache.

This module wires together the top-level Typer application and registers
the built-in commands (``install``, ``activate``, ``fetch``, ``purge``,
``namespaces``, ``inspect``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.  It installs signal handlers, registers commands, and
invokes the Typer app.  Unhandled exceptions are written to a crash log
under the data directory.

See Also:
    :mod:`precache.config`: Configuration resolution.
    :mod:`precache.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

import typer

from precache import __version__
from precache.exit_codes import EXIT_GENERIC_FAILURE

if TYPE_CHECKING:
    from precache.output import OutputFormat


app = typer.Typer(
    name="precache",
    help="Precache static assets and serve them offline-first.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"precache {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    origin: Optional[str] = typer.Option(
        None, "--origin", help="Serving origin, e.g. https://example.com."
    ),
    version_tag: Optional[str] = typer.Option(
        None, "--version-tag", help="Worker version tag (namespace suffix)."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~precache.output.OutputManager` and stores
    ``origin`` and ``version`` in ``ctx.obj`` for the sub-commands.
    """
    from precache.output import OutputFormat, OutputManager, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = _configured_format()

    set_output(
        OutputManager(
            format=fmt,
            no_color=no_color,
            quiet=quiet,
            verbose=verbose,
        )
    )

    ctx.ensure_object(dict)
    ctx.obj["origin"] = origin
    ctx.obj["version"] = version_tag
    ctx.obj["verbose"] = verbose


def _configured_format() -> OutputFormat:
    """Return the ``output.format`` stored in the global config."""
    from precache.config import load_global_config
    from precache.exceptions import ConfigError
    from precache.output import OutputFormat

    try:
        return OutputFormat(load_global_config().output.format)
    except ConfigError:
        # The command that needs the config reports the error.
        return OutputFormat.AUTO


def register_commands(target: typer.Typer) -> None:
    """Attach the built-in commands to *target*."""
    from precache.commands.config import config_app
    from precache.commands.inspect import inspect_command, namespaces_command
    from precache.commands.worker import (
        activate_command,
        fetch_command,
        install_command,
        purge_command,
    )

    target.command("install")(install_command)
    target.command("activate")(activate_command)
    target.command("fetch")(fetch_command)
    target.command("purge")(purge_command)
    target.command("namespaces")(namespaces_command)
    target.command("inspect")(inspect_command)
    target.add_typer(config_app, name="config", help="Configuration management.")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to the data directory and return its path."""
    from precache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``precache`` console script.

    :class:`~precache.exceptions.PrecacheError` instances that escape a
    command exit with the error's ``exit_code``; anything else produces a
    crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        register_commands(app)
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from precache.exceptions import PrecacheError
        from precache.output import error

        if isinstance(exc, PrecacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
