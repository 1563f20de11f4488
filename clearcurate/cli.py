"""
ClearCurate CLI - Command line interface for ClearCurate.

Commands:
- license normalize|expand|satisfies|merge: License expression tools
- curation validate: Validate a curation document
- curation apply: Apply a curation revision onto a definition
- sync: Backfill contributions from the curation repository
"""

import asyncio
import json
import sys
from typing import Optional

import click

from clearcurate import __version__
from clearcurate.config import CurateConfig
from clearcurate.engine.curation import Curation
from clearcurate.errors import LicenseExpressionError
from clearcurate.license import expression
from clearcurate.logging_config import configure_logging
from clearcurate.wiring import build_services


def print_issues(curation: Curation) -> None:
    """Print curation issues in a formatted way."""
    for issue in curation.errors:
        location = f" ({issue.path})" if issue.path else ""
        click.echo(f"  ✗ {issue.message}{location}: {issue.reason}")


@click.group()
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context):
    """ClearCurate - curation and definition synthesis"""
    ctx.ensure_object(dict)


@cli.group()
def license():
    """License expression tools"""


@license.command()
@click.argument("expr")
def normalize(expr: str):
    """Print the canonical form of EXPR."""
    result = expression.normalize(expr)
    click.echo(result if result is not None else "")


@license.command()
@click.argument("expr")
def expand(expr: str):
    """Print EXPR as a list of AND-clauses."""
    try:
        expression.parse(expr)
    except LicenseExpressionError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(2)
    click.echo(json.dumps(expression.expand(expr)))


@license.command()
@click.argument("candidate")
@click.argument("required")
def satisfies(candidate: str, required: str):
    """Exit 0 if CANDIDATE satisfies REQUIRED, 1 otherwise."""
    result = expression.satisfies(candidate, required)
    click.echo("true" if result else "false")
    sys.exit(0 if result else 1)


@license.command()
@click.argument("left")
@click.argument("right")
@click.option("--conjunction", "-c", type=click.Choice(["OR", "AND"], case_sensitive=False), default="OR")
def merge(left: str, right: str, conjunction: str):
    """Combine LEFT and RIGHT."""
    click.echo(expression.merge(left, right, conjunction) or "")


@cli.group()
def curation():
    """Curation document tools"""


@curation.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def validate(file: str):
    """Validate a curation document."""
    with open(file, "r", encoding="utf-8") as f:
        document = Curation(f.read(), path=file)
    if document.is_valid:
        click.echo(f"✓ {file} is valid ({len(document.revisions)} revision(s))")
        return
    click.echo(f"✗ {file} is invalid", err=True)
    print_issues(document)
    sys.exit(1)


@curation.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("definition", type=click.Path(exists=True, dir_okay=False))
@click.option("--revision", "-r", required=True, help="Curated revision to apply")
@click.option("--output", "-o", type=click.Path(), help="Write the result to a file")
def apply(file: str, definition: str, revision: str, output: Optional[str]):
    """Apply the REVISION patch of a curation FILE onto a DEFINITION (JSON)."""
    with open(file, "r", encoding="utf-8") as f:
        document = Curation(f.read(), path=file)
    if not document.is_valid:
        click.echo(f"✗ {file} is invalid", err=True)
        print_issues(document)
        sys.exit(1)
    if revision not in document.revisions:
        click.echo(f"✗ Revision {revision} is not curated in {file}", err=True)
        sys.exit(1)
    with open(definition, "r", encoding="utf-8") as f:
        target = json.load(f)

    result = json.dumps(document.apply_revision(target, revision), indent=2, ensure_ascii=False)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(result)
        click.echo(f"Definition saved to: {output}")
    else:
        click.echo(result)


@cli.command()
def sync():
    """Backfill contributions that are out of date in the curation store."""
    config = CurateConfig()
    config.ensure_directories()
    logger = configure_logging(config.log_level, config.log_json)
    services = build_services(config, logger)
    updated = asyncio.run(services.contributions.sync_all_contributions())
    click.echo(f"✓ {updated} contribution(s) updated")


if __name__ == "__main__":
    cli()
