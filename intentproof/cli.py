"""
IntentProof CLI - prove what was actually done.

Commands:
- verify: Execute and verify an intent file
- check: Quick verification of a single command
- show: Display an intent file without running it
- init: Create an example intent file
- examples: Show example intent definitions
- config: Show/create project config
"""

import click
import json
import logging
import os
import sys

from intentproof import __version__
from intentproof.config import ProjectConfig, get_config_path, load_config, save_config
from intentproof.engine import create_intent
from intentproof.events import EventType
from intentproof.loader import (
    IntentFileError,
    dump_intent_data,
    example_intent,
    load_intent_file,
)


EVENT_COLORS = {
    EventType.START: "blue",
    EventType.PHASE: "yellow",
    EventType.STEP_START: "cyan",
    EventType.STEP_RETRY: "yellow",
    EventType.STEP_COMPLETE: "green",
    EventType.STEP_FAILED: "red",
    EventType.STEP_SKIPPED: "yellow",
    EventType.CHECK_FAILED: "magenta",
    EventType.COMPLETE: "green",
    EventType.FAILED: "red",
}

EXAMPLES = [
    (
        "Verify a bug fix",
        {
            "goal": "Fix authentication bug",
            "preconditions": [{"check": "pytest tests/test_auth.py", "expect": "fails"}],
            "steps": [
                {"name": "Apply fix", "verify": "grep -c singleton lib/client.py || true", "expect": "=0"},
            ],
            "postconditions": [{"check": "pytest tests/test_auth.py", "expect": "passed"}],
        },
    ),
    (
        "Verify file creation",
        {
            "goal": "Create test files",
            "steps": [
                {"name": "Create unit test", "verify": {"file": "tests/test_unit.py", "exists": True}},
                {"name": "Create integration test", "verify": "test -f tests/test_integration.py"},
            ],
        },
    ),
    (
        "Verify refactoring (with invariants)",
        {
            "goal": "Move helpers into a package",
            "invariants": [{"check": "pytest -q", "expect": "passed"}],
            "steps": [
                {"name": "Package exists", "verify": "find src/helpers -name '*.py' | wc -l", "expect": ">0"},
                {"name": "Old module removed", "verify": "test -f src/helpers.py", "expect": "fails"},
            ],
        },
    ),
]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@click.group()
@click.version_option(version=__version__)
def cli():
    """IntentProof - verify declared work against reality.

    Declare a goal with preconditions, steps and postconditions;
    IntentProof runs the checks and only reports success when
    every one of them passed.
    """
    pass


@cli.command()
@click.argument("intent_file", type=click.Path())
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging and the final intent summary")
@click.option("-p", "--project", default=None, help="Project path (config and working directory)")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def verify(intent_file: str, verbose: bool, project: str, as_json: bool):
    """Execute and verify an intent from a JSON or YAML file.

    \b
    Example:
        intentproof verify intent.json
        intentproof verify intent.yaml -v
    """
    _configure_logging(verbose)
    project_path = project or os.getcwd()

    try:
        intent = load_intent_file(intent_file, load_config(project_path), base_dir=project_path)
    except (FileNotFoundError, IntentFileError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    run = intent.run()
    for event in run:
        if not as_json:
            click.secho(event.format(), fg=EVENT_COLORS.get(event.type))
    result = run.result

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        click.echo("")
        click.secho(result.format_report(), fg="green" if result.success else "red")
        if verbose or intent.options.verbose:
            click.echo("")
            click.echo(intent.visualize())

    sys.exit(0 if result.success else 1)


@cli.command()
@click.argument("command")
@click.option("-e", "--expect", default=None, help="Expected output")
def check(command: str, expect: str):
    """Quick verification of a single command.

    \b
    Example:
        intentproof check "ls src | wc -l" -e ">3"
    """
    result = (
        create_intent("Quick check")
        .step("Verify command", verify=command, expected=expect)
        .execute()
    )

    if result.success:
        click.secho("✓ Command verified successfully", fg="green")
    else:
        click.secho(f"✗ Verification failed: {result.failure_reason}", fg="red")

    sys.exit(0 if result.success else 1)


@cli.command()
@click.argument("intent_file", type=click.Path())
def show(intent_file: str):
    """Display an intent file without executing it."""
    try:
        intent = load_intent_file(intent_file)
    except (FileNotFoundError, IntentFileError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(intent.visualize())


@cli.command()
@click.option("--format", "fmt", type=click.Choice(["json", "yaml"]), default=None,
              help="File format (defaults to the project config)")
@click.option("-p", "--project", default=None, help="Project path")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init(fmt: str, project: str, force: bool):
    """Create an example intent file."""
    project_path = project or os.getcwd()
    fmt = fmt or load_config(project_path).default_format
    path = os.path.join(project_path, f"intent.{fmt}")

    if os.path.exists(path) and not force:
        click.echo(f"Error: {path} already exists (use --force to overwrite)", err=True)
        sys.exit(1)

    with open(path, "w") as f:
        f.write(dump_intent_data(example_intent(), fmt))

    click.secho(f"✓ Created {path}", fg="green")
    click.echo("Edit this file to define your verification intent")
    click.echo(f"Run with: intentproof verify {os.path.basename(path)}")


@cli.command()
def examples():
    """Show example usage patterns."""
    click.secho("IntentProof Examples", fg="blue")
    for i, (title, data) in enumerate(EXAMPLES, start=1):
        click.echo("")
        click.secho(f"{i}. {title}:", fg="yellow")
        click.echo(json.dumps(data, indent=2))


@cli.command("config")
@click.option("-p", "--project", default=None, help="Project path")
@click.option("--init", "init_config", is_flag=True, help="Create default config")
def config_cmd(project: str, init_config: bool):
    """Show or create project config.

    \b
    Example:
        intentproof config            # Show current config
        intentproof config --init     # Create default config
    """
    project_path = project or os.getcwd()

    if init_config:
        path = save_config(project_path, ProjectConfig())
        click.echo(f"Created config: {path}")
        return

    if not get_config_path(project_path).exists():
        click.echo("No config found (using defaults).")
        click.echo("Create one with: intentproof config --init")

    config = load_config(project_path)
    click.echo("IntentProof Config")
    click.echo("=" * 40)
    for key, value in config.options.to_dict().items():
        click.echo(f"  {key}: {value}")
    click.echo(f"  default_format: {config.default_format}")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
