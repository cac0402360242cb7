"""CLI commands for damworks."""

import asyncio
import logging
import signal
import sys
from pathlib import Path

import click


@click.group()
@click.version_option(package_name="damworks")
def cli():
    """damworks - asset ingestion and derivative processing."""
    pass


def _load_settings():
    from damworks.config import get_settings
    from damworks.lib import observability

    settings = get_settings()
    observability.configure_logging(settings)
    observability.configure(settings)
    return settings


def _build_worker(settings):
    """Wire a Worker and return it with a cleanup coroutine function."""
    from damworks.asgi import create_db_config
    from damworks.lib import observability
    from damworks.lib.queue.database import DatabaseJobQueue
    from damworks.lib.storage.manager import StorageManager
    from damworks.worker import Worker

    db_config = create_db_config(settings.db)
    observability.instrument_sqlalchemy(db_config.get_engine())
    observability.instrument_httpx(settings)
    storage = StorageManager(settings.storage, secret_key=settings.secret_key)
    queue = DatabaseJobQueue(
        db_config.create_session_maker(),
        default_max_attempts=settings.queue.default_max_attempts,
    )
    worker = Worker(
        db_config.create_session_maker(),
        storage,
        queue,
        settings,
        logger=logging.getLogger("damworks.worker"),
    )

    async def cleanup() -> None:
        await storage.close()
        await db_config.get_engine().dispose()

    return worker, cleanup


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--workers", default=1, type=int, help="Number of worker processes")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
)
def serve(host, port, reload, workers, log_level):
    """Run the HTTP API."""
    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config

    config = Config()
    config.application_path = "damworks.asgi:app"
    config.bind = [f"{host}:{port}"]
    config.workers = 1 if reload else workers
    config.loglevel = log_level.upper()
    config.include_server_header = False

    if reload:
        config.use_reloader = True
        from hypercorn.run import run
        run(config)
        return

    from damworks.asgi import app

    shutdown_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown_event.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_event.set)
    try:
        loop.run_until_complete(
            hypercorn_serve(app, config, shutdown_trigger=shutdown_event.wait)
        )
    finally:
        loop.close()


@cli.command()
@click.option("--once", is_flag=True, help="Process at most one job and exit")
def worker(once):
    """Run the derivative processing worker."""
    settings = _load_settings()

    async def main() -> None:
        dam_worker, cleanup = _build_worker(settings)
        try:
            if once:
                worked = await dam_worker.run_once()
                click.echo("Processed 1 job" if worked else "No jobs due")
                return

            shutdown_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            loop.add_signal_handler(signal.SIGINT, shutdown_event.set)
            loop.add_signal_handler(signal.SIGTERM, shutdown_event.set)
            await dam_worker.run(shutdown_event)
        finally:
            await cleanup()

    asyncio.run(main())


@cli.command("reclaim-stale")
def reclaim_stale():
    """Requeue jobs stuck in processing past the stale threshold."""
    settings = _load_settings()

    async def main():
        dam_worker, cleanup = _build_worker(settings)
        try:
            return await dam_worker.reclaim_stale()
        finally:
            await cleanup()

    result = asyncio.run(main())
    click.echo(f"Requeued {result.requeued} job(s), failed {len(result.exhausted)} exhausted job(s)")


@cli.command("sweep-temp")
@click.option(
    "--older-than",
    type=float,
    default=None,
    help="Age in seconds (defaults to worker.temp_max_age)",
)
def sweep_temp(older_than):
    """Remove scratch files left behind by crashed workers."""
    from damworks.lib.tempfiles import resolve_temp_root, sweep_temp_dir

    settings = _load_settings()
    root = resolve_temp_root(settings.worker.temp_dir)
    age = older_than if older_than is not None else settings.worker.temp_max_age
    removed = sweep_temp_dir(root, age)
    click.echo(f"Removed {removed} temp entr{'y' if removed == 1 else 'ies'} from {root}")


@cli.command("failed-jobs")
@click.option("--limit", default=20, type=int, help="Maximum jobs to show")
def failed_jobs(limit):
    """List jobs that exhausted their attempts."""
    from damworks.asgi import create_db_config
    from damworks.db.services.job_service import list_failed_jobs

    settings = _load_settings()

    async def main():
        db_config = create_db_config(settings.db)
        try:
            async with db_config.get_session() as session:
                return await list_failed_jobs(session, limit)
        finally:
            await db_config.get_engine().dispose()

    for job in asyncio.run(main()):
        click.echo(f"{job.id}  {job.job_name}  attempts={job.attempts}  {job.last_error or ''}")


def _run_alembic(args: list[str]) -> None:
    """Build an Alembic Config programmatically and run the given command."""
    from alembic.config import CommandLine, Config

    package_dir = Path(__file__).parent
    cfg = Config()
    cfg.set_main_option("script_location", str(package_dir / "alembic"))

    cmd = CommandLine()
    options = cmd.parser.parse_args(args)
    if not hasattr(options, "cmd"):
        cmd.parser.error("too few arguments")
    else:
        cfg.cmd_opts = options
        fn, positional, kwarg = options.cmd
        fn(
            cfg,
            *[getattr(options, k, None) for k in positional],
            **{k: getattr(options, k, None) for k in kwarg},
        )


@cli.command(
    context_settings=dict(
        ignore_unknown_options=True,
        allow_extra_args=True,
    )
)
@click.pass_context
def db(ctx):
    """Run database migrations via Alembic.

    \b
    Examples:
        damworks db upgrade head    # Apply all migrations
        damworks db downgrade -1    # Rollback one migration
        damworks db current         # Show current revision
        damworks db history         # Show migration history
    """
    args = ctx.args
    if not args:
        click.echo(ctx.get_help())
        return

    try:
        _run_alembic(args)
    except SystemExit:
        raise
    except Exception as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
