"""gitmods CLI - Command line interface for gitmods."""
import logging
import sys
from pathlib import Path

import click

from gitmods.core.errors import (
    ConfigError,
    ConflictError,
    InvalidRefError,
    VersionOverrideError,
)
from gitmods.core.versions import INCREMENTS
from gitmods.modules.context import Context
from gitmods.release.planner import TagOptions, tag_operation
from gitmods.sync.export import export_project
from gitmods.sync.status import collect_status
from gitmods.sync.update import UpdateOptions, update as run_update

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(name)s: %(message)s",
)
logger = logging.getLogger("gitmods")

cwd_option = click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=Path("."),
    help="Project directory (default: current directory)",
)


@click.group()
def main():
    """gitmods - git-hosted module dependencies for multi-repository projects."""
    pass


@main.command()
@cwd_option
def status(cwd: Path):
    """Show what each module is checked out at against what is declared.

    Exit codes:
        0: Success
        1: Generic runtime failure
        7: Configuration file error
    """
    try:
        rows = collect_status(Context(cwd))
        if not rows:
            click.echo("No dependencies")
        for row in rows:
            click.echo(row.format())
        sys.exit(0)

    except ConfigError as e:
        logger.error(f"Configuration error: {str(e)}")
        sys.exit(7)

    except Exception as e:
        logger.error(f"Status failed: {str(e)}")
        sys.exit(1)


@main.command()
@cwd_option
@click.option("--switch", is_flag=True, help="Switch modules to their declared targets")
@click.option(
    "--remote-reset/--no-remote-reset",
    default=True,
    help="Leave branches that were deleted upstream (default: on)",
)
@click.option("--ignore-dependencies", is_flag=True, help="Only update the project itself")
@click.option(
    "--force-latest",
    is_flag=True,
    help="Resolve conflicting declarations to the highest version",
)
@click.option(
    "--interactive/--no-interactive",
    default=False,
    help="Ask which version to use when declarations conflict",
)
@click.option(
    "--version",
    "versions",
    multiple=True,
    metavar="NAME=TAG",
    help="Use TAG for module NAME (repeatable)",
)
@click.option(
    "--input",
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file mapping module names to tags",
)
@click.option("--link/--no-link", default=None, help="Share clones through the link cache")
@click.option("--depth", type=click.IntRange(min=1), default=None, help="Shallow clone depth")
def update(
    cwd: Path,
    switch: bool,
    remote_reset: bool,
    ignore_dependencies: bool,
    force_latest: bool,
    interactive: bool,
    versions: tuple,
    input_file: Path,
    link: bool,
    depth: int,
):
    """Update the project and clone, switch and pull its modules.

    Examples:
        gitmods update
        gitmods update --switch --version dep1=1.2.0

    Exit codes:
        0: Success
        1: Generic runtime failure, or some modules could not be updated
        3: Invalid reference or version override
        4: Unresolved merge conflicts
        7: Configuration file error
    """
    try:
        options = UpdateOptions(
            switch=switch,
            remote_reset=remote_reset,
            ignore_dependencies=ignore_dependencies,
            force_latest=force_latest,
            interactive=interactive,
            versions=versions,
            input_file=input_file,
        )
        result = run_update(Context(cwd, link=link, depth=depth), options)

        status_map = result.status_map
        click.echo(
            f"[OK] {status_map.inspected_count()} repositories inspected, "
            f"{status_map.changed_count()} changed"
        )
        if result.conflicted:
            click.echo(f"  Merge conflicts: {', '.join(result.conflicted)}")
            sys.exit(4)
        if result.halted:
            click.echo(f"  Failed: {', '.join(result.halted)}")
            sys.exit(1)
        sys.exit(0)

    except ConflictError as e:
        logger.error(f"{str(e)}. Resolve them before updating")
        sys.exit(4)

    except (InvalidRefError, VersionOverrideError) as e:
        logger.error(f"Invalid reference: {str(e)}")
        sys.exit(3)

    except ConfigError as e:
        logger.error(f"Configuration error: {str(e)}")
        sys.exit(7)

    except Exception as e:
        logger.error(f"Update failed: {str(e)}")
        sys.exit(1)


@main.command()
@cwd_option
@click.option(
    "--increment",
    type=click.Choice(INCREMENTS),
    default="minor",
    help="Which part of the version to increment (default: minor)",
)
@click.option(
    "--interactive/--no-interactive",
    default=True,
    help="Confirm the plan before tagging",
)
def tag(cwd: Path, increment: str, interactive: bool):
    """Cut release tags for the project and every module that changed.

    Modules whose current state was already tagged reuse that tag.

    Exit codes:
        0: Success
        1: Generic runtime failure
        7: Configuration file error
    """
    try:
        plan = tag_operation(
            Context(cwd),
            TagOptions(increment=increment, interactive=interactive),
        )
        for name, entry in plan.items():
            action = "NEW" if entry.create else "REUSE"
            click.echo(f"[{action}] {name}: {entry.tag}")
        sys.exit(0)

    except ConfigError as e:
        logger.error(f"Configuration error: {str(e)}")
        sys.exit(7)

    except Exception as e:
        logger.error(f"Tag failed: {str(e)}")
        sys.exit(1)


@main.command(name="export")
@click.argument("destination", type=click.Path(file_okay=False, path_type=Path))
@cwd_option
@click.option("--ignore-dependencies", is_flag=True, help="Leave modules out of the export")
def export_command(destination: Path, cwd: Path, ignore_dependencies: bool):
    """Copy the project and its modules to DESTINATION.

    Exit codes:
        0: Success
        1: Generic runtime failure
        7: Configuration file error
    """
    try:
        exported = export_project(Context(cwd), destination, ignore_dependencies)
        click.echo(f"[OK] Exported to {exported}")
        sys.exit(0)

    except ConfigError as e:
        logger.error(f"Configuration error: {str(e)}")
        sys.exit(7)

    except Exception as e:
        logger.error(f"Export failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
