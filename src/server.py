"""Protean Engine runner for the ordering domain.

Starts the Engine that processes events asynchronously:
- OutboxProcessor: polls the outbox table and publishes events to the broker
- StreamSubscriptions: read the broker and invoke event handlers (cart clearing)

Usage:
    python src/server.py
    python src/server.py --test-mode   # Process pending messages and exit
"""

import argparse
import asyncio
import os

from protean.server.engine import Engine

from ordering.domain import ordering
from ordering.utils.logging import configure_logging


async def run(test_mode: bool = False):
    ordering.init()
    engine = Engine(ordering, test_mode=test_mode)
    await engine.run()


def main():
    parser = argparse.ArgumentParser(description="Ordering Engine runner")
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Process the messages that are already queued, then stop",
    )
    args = parser.parse_args()

    configure_logging(os.getenv("LOG_DIR"))
    asyncio.run(run(test_mode=args.test_mode))


if __name__ == "__main__":
    main()
