#!/usr/bin/env python3
"""
RBAC graph server

`python run.py` serves the HTTP API; `python run.py sync` runs one full
sync and prints the snapshot as JSON.
"""

import argparse
import asyncio
import sys

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from rbacgraph.config import get_settings  # noqa: E402
from rbacgraph.core.logging import get_logger, setup_logging  # noqa: E402

# our own logging config; uvicorn's default log_config would replace it
setup_logging()


async def _sync_once(validate: bool) -> int:
    from rbacgraph.connector import KubernetesConnector

    logger = get_logger("rbacgraph.run")
    connector = KubernetesConnector.from_settings()
    if validate:
        await connector.validate()
    snapshot = await connector.sync()
    sys.stdout.write(snapshot.model_dump_json(indent=2))
    sys.stdout.write("\n")
    logger.info("run.sync_written", grants=len(snapshot.grants))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Kubernetes RBAC permission graph")
    parser.add_argument("command", nargs="?", choices=("serve", "sync"), default="serve")
    parser.add_argument("--no-validate", action="store_true", help="skip the connectivity check before syncing")
    parser.add_argument("--reload", action="store_true", help="auto-reload the server on code changes")
    args = parser.parse_args(argv)

    if args.command == "sync":
        return asyncio.run(_sync_once(validate=not args.no_validate))

    settings = get_settings()
    uvicorn.run(
        "rbacgraph.main:app",
        host=settings.host,
        port=settings.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
