"""
PageSense command line interface.

Connects to a remote Chromium over CDP and prints JSON results.

Launch:
    pagesense segment http://localhost:9222 --session demo
    pagesense settle ws://browser-1:9222/devtools/browser/abc
    pagesense repeated http://localhost:9222 -p 40,210,tr -p 40,260,tr -p 300,210,td
"""

import asyncio
import logging
import sys
from typing import Any, Awaitable, Callable

import click
from dotenv import load_dotenv

from pagesense.command.command_utils import (
    default_logger_config_path,
    emit_json,
    get_log_dir,
    load_config,
    parse_point,
)
from pagesense.common.logger import setup_logging
from pagesense.engine import SCROLL_DIRECTIONS, PageSense
from pagesense.errors import PageSenseError

logger = logging.getLogger(__name__)

DEFAULT_LOG_PATH = get_log_dir() / 'pagesense.log'


def _run(ctx: click.Context, action: Callable[[PageSense], Awaitable[Any]]) -> None:
    async def _main() -> Any:
        async with PageSense(ctx.obj["config"]) as engine:
            return await action(engine)

    try:
        payload = asyncio.run(_main())
    except PageSenseError as exc:
        logger.error("pagesense command failed: %s", exc.message)
        emit_json(exc.to_dict(), err=True)
        sys.exit(1)
    except ValueError as exc:
        emit_json({"code": "invalid_request", "message": str(exc)}, err=True)
        sys.exit(2)
    except KeyboardInterrupt:
        click.echo("\nInterrupted.", err=True)
        sys.exit(130)
    emit_json(payload)


@click.group(name="pagesense")
@click.option('--config', '-c', default=None,
              help='Path to the configuration file (YAML or JSON).',
              type=click.Path(exists=True, dir_okay=False))
@click.option('--session', '-s', default='default', help='Session id the connection is pooled under.')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging.')
@click.pass_context
def cli(ctx, config, session, verbose):
    """
    Perceive and wait on pages of a remote browser.
    """
    load_dotenv()
    setup_logging(
        config_file_path=default_logger_config_path(),
        log_file_path=DEFAULT_LOG_PATH,
        verbose=verbose,
    )
    try:
        page_config = load_config(config)
    except (OSError, ValueError) as e:
        click.echo(f"Error: Failed to parse configuration file: {e}", err=True)
        sys.exit(1)
    ctx.obj = {"config": page_config, "session": session}


@cli.command()
@click.argument('endpoint')
@click.pass_context
def pages(ctx, endpoint):
    """Show the active page and the number of open pages."""
    _run(ctx, lambda engine: engine.pages(endpoint, ctx.obj["session"]))


@cli.command()
@click.argument('endpoint')
@click.pass_context
def settle(ctx, endpoint):
    """Wait until the active page stops changing visually."""
    async def _action(engine: PageSense):
        outcome = await engine.wait_until_stable(endpoint, ctx.obj["session"])
        return outcome.to_result()

    _run(ctx, _action)


@cli.command()
@click.argument('endpoint')
@click.argument('direction', type=click.Choice(SCROLL_DIRECTIONS))
@click.pass_context
def scroll(ctx, endpoint, direction):
    """Scroll to the top, the bottom, or one viewport down."""
    async def _action(engine: PageSense):
        outcome = await engine.scroll(endpoint, ctx.obj["session"], direction)
        return outcome.to_result()

    _run(ctx, _action)


@cli.command()
@click.argument('endpoint')
@click.option('--full-page', is_flag=True, help='Keep segments outside the viewport.')
@click.option('--no-wait-loaded', is_flag=True, help='Do not re-segment loading screens.')
@click.option('--page-index', type=int, default=None, help='Segment this page instead of the active one.')
@click.pass_context
def segment(ctx, endpoint, full_page, no_wait_loaded, page_index):
    """Segment the page into labelled leaf elements."""
    async def _action(engine: PageSense):
        result = await engine.segment(
            endpoint,
            ctx.obj["session"],
            full_page=full_page,
            wait_loaded=not no_wait_loaded,
            page_index=page_index,
        )
        return result.to_dict()

    _run(ctx, _action)


@cli.command()
@click.argument('endpoint')
@click.option('--point', '-p', 'points', multiple=True, required=True,
              help='Example as X,Y,TAG. The first two are rows, the rest are fields.')
@click.option('--property', 'properties', multiple=True, help='Property the rows must share.')
@click.option('--strategy', type=click.Choice(['path', 'attributes']), default=None)
@click.option('--show-template', is_flag=True, help='Also print the template the rows were matched with.')
@click.pass_context
def repeated(ctx, endpoint, points, properties, strategy, show_template):
    """Extract every repetition of the pattern the example points describe."""
    parsed = [parse_point(raw) for raw in points]
    if len(parsed) < 2:
        raise click.UsageError("at least two --point examples are required")

    async def _action(engine: PageSense):
        if show_template:
            template, columns = await engine.extract(
                endpoint,
                ctx.obj["session"],
                parsed,
                properties=list(properties) or None,
                strategy=strategy,
            )
            return {
                "template": template.to_dict() if template is not None else None,
                "columns": [[record.to_dict() for record in column] for column in columns],
            }
        columns = await engine.generalize(
            endpoint,
            ctx.obj["session"],
            parsed,
            properties=list(properties) or None,
            strategy=strategy,
        )
        return [[record.to_dict() for record in column] for column in columns]

    _run(ctx, _action)


def run():
    cli(obj={})


if __name__ == "__main__":
    run()
