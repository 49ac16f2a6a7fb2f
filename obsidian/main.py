"""Obsidian — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for the
serve, once and status modes.
"""

import logging

from fastapi import FastAPI

from obsidian.api.routers import router

app = FastAPI(title="Obsidian Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("obsidian")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse
    import asyncio

    from obsidian.api.routers import configure_routers
    from obsidian.cli.dashboard import print_status
    from obsidian.config import load_config, load_watchlist
    from obsidian.guard.session_guard import SessionGuard
    from obsidian.market.client import MarketDataClient
    from obsidian.repos.db import init_db
    from obsidian.repos.state_repo import SqliteStateStore, StateRepo
    from obsidian.scanner import MarketScanner

    parser = argparse.ArgumentParser(description="Obsidian crypto decision-support terminal")
    parser.add_argument(
        "--mode",
        choices=["serve", "once", "status"],
        default="serve",
        help="serve: API + periodic refresh; once: single refresh; status: guard only",
    )
    parser.add_argument("--env", help="Path to a .env file")
    args = parser.parse_args()

    config = load_config(args.env)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    init_db(config.db_path)
    guard = SessionGuard(StateRepo(SqliteStateStore(config.db_path)))

    if args.mode == "status":
        print_status(guard.status())
        return

    watchlist = load_watchlist(config.watchlist_path)
    scanner = MarketScanner(config, MarketDataClient(config), watchlist)
    configure_routers(scanner=scanner, guard=guard, account_usd=config.account_usd)

    if args.mode == "once":
        summary = asyncio.run(scanner.refresh())
        if summary["status"] == "error":
            logger.error("Refresh failed: %s", summary["reason"])
        print_status(guard.status(), scanner.setups())
        return

    import signal

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received — stopping gracefully.")
        scanner.stop()

    signal.signal(signal.SIGINT, handle_shutdown)
    asyncio.run(_serve(scanner, config.api_port))


async def _serve(scanner, port: int = 8080) -> None:
    """Start the API server and the refresh loop concurrently."""
    import asyncio
    import uvicorn

    logger.info("Starting Obsidian API on port %d.", port)

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    async def _run_server():
        await server.serve()
        scanner.stop()

    results = await asyncio.gather(
        _run_server(),
        scanner.run(),
        return_exceptions=True,
    )
    logger.info("Obsidian stopped. Results: %s", results)


if __name__ == "__main__":
    _run_cli()
