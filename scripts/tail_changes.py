"""
Huddle Change Tail

Follows changes relayed to RabbitMQ by a running server and logs one line
per change. The server needs FEED_RELAY_ENABLED=true.

Usage:
    python scripts/tail_changes.py                # every table, every room
    python scripts/tail_changes.py <room_id>      # one room's messages
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from huddle.core.logging import get_logger, setup_logging  # noqa: E402
from huddle.core.messaging.broker import MessageBroker  # noqa: E402
from huddle.core.messaging.feed import ChangeEvent  # noqa: E402

logger = get_logger("huddle.scripts.tail_changes")


def log_change(event: ChangeEvent) -> None:
    logger.info(f"#{event.commit_seq} {event.op.value} {event.table} {event.row_id}")


def main():
    setup_logging()
    binding_key = "#"
    if len(sys.argv) > 1:
        binding_key = MessageBroker.binding_key_for_room(sys.argv[1])
    broker = MessageBroker()
    try:
        broker.follow(binding_key, log_change)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        broker.close()


if __name__ == "__main__":
    main()
