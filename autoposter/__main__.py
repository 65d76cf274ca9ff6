"""
Command line entry point.

    python -m autoposter serve            # HTTP API + schedule evaluator
    python -m autoposter run-once --dry-run
"""

import argparse
import asyncio
import json
import logging
import sys

import uvicorn

from .config import AppConfig
from .entrypoint import create_orchestrator, run_pipeline_once
from .logging_setup import configure_logging
from .main import create_app


async def _run_once(config: AppConfig, args) -> int:
    orchestrator = create_orchestrator(config)
    exit_code, status = await run_pipeline_once(
        orchestrator,
        dry_run=args.dry_run,
        keyword_id=args.keyword_id,
        max_wait_time=args.timeout,
    )
    print(json.dumps(status, ensure_ascii=False, indent=2))
    return exit_code


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="autoposter",
        description="Autoposter pipeline orchestrator"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API and the schedule evaluator")
    serve.add_argument("--host", type=str, default=None, help="Bind address (default: AUTOPOSTER_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT or 3001)")

    run_once = subparsers.add_parser("run-once", help="Run the pipeline once and exit")
    run_once.add_argument("--dry-run", action="store_true", help="Skip publishing")
    run_once.add_argument("--keyword-id", type=str, default=None, help="Keyword to use instead of the next pending one")
    run_once.add_argument("--timeout", type=float, default=None, help="Give up after this many seconds")

    args = parser.parse_args(argv)

    config = AppConfig.from_environment()
    if args.command == "serve":
        if args.host:
            config.host = args.host
        if args.port:
            config.port = args.port

    configure_logging(config)
    logger = logging.getLogger("autoposter")

    if args.command == "serve":
        logger.info(f"Starting server on {config.host}:{config.port}")
        uvicorn.run(create_app(config), host=config.host, port=config.port, log_config=None)
        return 0

    return asyncio.run(_run_once(config, args))


if __name__ == "__main__":
    sys.exit(main())
