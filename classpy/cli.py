"""
classpy CLI -- Structural Artifact Inspector
=============================================

Click-based command-line interface for classpy.  Decodes a JVM class
file, an Android dex file or a Lua 5.3 compiled chunk and prints its
component tree, or exports it as JSON.

Usage::

    # Auto-detect the format and show three levels of the tree
    classpy Foo.class

    # Force the dex decoder and expand everything
    classpy classes.dex --format dex --depth -1

    # JSON document on stdout
    classpy luac.out --json

    # JSON report written to disk
    classpy Foo.class --output Foo.json

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import sys

import click
from rich.markup import escape

from shared.config import ClasspyConfig
from shared.console import ClasspyConsole
from shared.logger import ClasspyLogger

from classpy.core.engine import InspectorEngine
from classpy.output.console import TreeConsoleOutput
from classpy.output.report import ReportGenerator


# ---------------------------------------------------------------------------
# CLI command
# ---------------------------------------------------------------------------

@click.command("classpy")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--format", "-f",
    "file_format",
    type=click.Choice(["auto", "class", "dex", "luac"], case_sensitive=False),
    default="auto",
    help="Artifact format override.  Default: auto-detect.",
)
@click.option(
    "--depth", "-d",
    type=int,
    default=None,
    help="Tree levels to expand (negative for all).  Default: from config.",
)
@click.option(
    "--output", "-o",
    "output_path",
    type=click.Path(),
    default=None,
    help="Write a JSON report to this path.",
)
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Output the tree as JSON to stdout.",
)
@click.option(
    "--no-offsets",
    is_flag=True,
    default=False,
    help="Hide the byte range of each component.",
)
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to a classpy.toml configuration file.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable verbose/debug output.",
)
def classpy_cli(
    path: str,
    file_format: str,
    depth: int | None,
    output_path: str | None,
    json_output: bool,
    no_offsets: bool,
    config_path: str | None,
    verbose: bool,
) -> None:
    """classpy -- inspect .class, .dex and luac files.

    PATH is the artifact to decode.  The exit status is 1 when the file
    cannot be decoded.

    Examples:

    \b
        classpy Hello.class
        classpy classes.dex --depth 2
        classpy luac.out --json
    """
    console = ClasspyConsole(quiet=json_output)

    try:
        config = ClasspyConfig.load(config_path)
    except (OSError, ValueError) as exc:
        console.error(f"Cannot load configuration: {exc}")
        sys.exit(1)

    settings = config.global_settings
    logger = ClasspyLogger(
        "cli",
        log_level="DEBUG" if verbose else settings.log_level,
        log_file=settings.log_file or None,
        json_logs=settings.log_json,
        console_output=verbose,
    )

    engine = InspectorEngine(config=config, logger=logger)
    try:
        with console.status(f"Decoding {escape(click.format_filename(path))}..."):
            result = engine.inspect(path, file_format.lower())
    except KeyboardInterrupt:
        console.warning("Inspection interrupted by user.")
        sys.exit(130)
    except OSError as exc:
        console.error(f"Cannot read {path}: {exc}")
        sys.exit(1)

    if depth is None:
        depth = config.view.max_depth
    max_depth = None if depth < 0 else depth
    report_gen = ReportGenerator()

    if json_output:
        click.echo(report_gen.to_json(result, max_depth=max_depth))
    else:
        TreeConsoleOutput(console=console).display(
            result,
            max_depth=max_depth,
            show_offsets=config.view.show_offsets and not no_offsets,
        )

    if output_path:
        report_path = report_gen.generate_json(result, output_path, max_depth=None)
        console.success(f"JSON report saved: {report_path}")

    if not result.ok:
        sys.exit(1)


# ---------------------------------------------------------------------------
# Module entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Entry point for the ``classpy`` script and ``python -m classpy``."""
    classpy_cli()


if __name__ == "__main__":
    main()
