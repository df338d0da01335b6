"""Main entry point for Reddit Radar."""

import argparse
import asyncio
import logging

from .config import get_config, load_subreddits
from .coordinator import build_coordinators
from .db import get_db
from .errors import ConfigurationError
from .sources import RedditCollector

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
# Silence verbose third-party logging
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def init_subreddits():
    """Seed the subreddits table from YAML config."""
    db = get_db()
    names = load_subreddits()
    try:
        for name in names:
            await db.upsert_subreddit(name)
            logger.info(f"  - Added subreddit: r/{name}")
    finally:
        await db.aclose()
    logger.info(f"Initialized {len(names)} subreddits")


async def run_collect():
    """Run one collection pass."""
    db = get_db()
    collector = RedditCollector(db)
    try:
        result = await collector.collect_all()
    finally:
        await collector.source.aclose()
        await db.aclose()
    logger.info(f"Collected {result['total_new']} new posts ({result['total_fetched']} fetched)")


async def run_stage(stage_name: str):
    """Drain all pending posts for a stage."""
    db = get_db()
    coordinator = build_coordinators(get_config(), db)[stage_name]
    try:
        result = await coordinator.start_batch()
    finally:
        await db.aclose()

    logger.info("=" * 50)
    logger.info(f"{coordinator.stage.label} complete!")
    logger.info(f"  Processed: {result.processed}")
    logger.info(f"  Passed: {result.passed}")
    logger.info(f"  Failed: {result.failed}")
    logger.info("=" * 50)


async def show_status(stage_name: str):
    db = get_db()
    coordinator = build_coordinators(get_config(), db)[stage_name]
    try:
        status = await coordinator.status()
    finally:
        await db.aclose()

    avg = f"{status.avg_score:.2f}" if status.avg_score is not None else "n/a"
    print(f"{coordinator.stage.label} status")
    print(f"  Total: {status.total}")
    print(f"  Pending: {status.pending}")
    print(f"  Classified: {status.classified}")
    print(f"  Passed: {status.passed}")
    print(f"  Average score: {avg}")
    print(f"  Configured: {status.is_configured}")


def serve(port: int | None = None):
    """Run the API server with the collector and background triage."""
    import uvicorn

    config = get_config()
    logging.getLogger().setLevel(config.log_level.upper())
    logger.info(f"Starting Reddit Radar ({config.environment}) on port {port or config.port}")
    uvicorn.run(
        "reddit_radar.web.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=port or config.port,
    )


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Reddit Radar - Find business opportunities in subreddit posts")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Init command
    subparsers.add_parser("init", help="Seed subreddits in database")

    # Collect command
    subparsers.add_parser("collect", help="Fetch new posts from all enabled subreddits")

    # Stage commands
    for command, help_text in (("triage", "Triage pending posts"), ("evaluate", "Evaluate posts that passed triage")):
        stage_parser = subparsers.add_parser(command, help=help_text)
        stage_parser.add_argument("action", choices=["run", "status"],
                                  help="run=classify all pending posts, status=show counters")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--port", type=int, help="Port to listen on (default: PORT env or 3000)")

    args = parser.parse_args()

    try:
        if args.command == "init":
            asyncio.run(init_subreddits())

        elif args.command == "collect":
            asyncio.run(run_collect())

        elif args.command in ("triage", "evaluate"):
            stage_name = "triage" if args.command == "triage" else "evaluation"
            if args.action == "run":
                asyncio.run(run_stage(stage_name))
            else:
                asyncio.run(show_status(stage_name))

        elif args.command == "serve":
            serve(args.port)

        else:
            parser.print_help()

    except ConfigurationError as e:
        logger.error(str(e))
        raise SystemExit(1)


if __name__ == "__main__":
    main()
