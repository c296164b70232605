"""Metrics as structured log lines.

Every helper emits one JSON object on the ``huddle.metrics`` logger, so a log
shipper can turn feed, relay, subscription and membership activity into
counters and gauges without a metrics client in the process.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger("huddle.metrics")

SERVICE_NAME = "huddle-backend"


def _emit(kind: str, name: str, labels: Optional[Dict[str, str]], **fields: Any) -> None:
    record: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "kind": kind,
        "name": name,
        "service": SERVICE_NAME,
        "instance_id": os.getenv("INSTANCE_ID", "unknown"),
    }
    if labels:
        record["labels"] = labels
    record.update({k: v for k, v in fields.items() if v is not None})
    logger.info(json.dumps(record, default=str))


def log_counter_increment(
    name: str, labels: Optional[Dict[str, str]] = None, amount: int = 1, **fields: Any
) -> None:
    """Count one occurrence, e.g. a published feed event."""
    _emit("counter", name, labels, value=amount, **fields)


def log_gauge_set(
    name: str, value: float, labels: Optional[Dict[str, str]] = None, **fields: Any
) -> None:
    """Record the current level of something, e.g. open feed streams."""
    _emit("gauge", name, labels, value=value, **fields)


def log_connection_event(event: str, peer: str, **fields: Any) -> None:
    """A transport connected, disconnected or failed (``peer`` is websocket, rabbitmq)."""
    _emit("connection", event, {"peer": peer}, **fields)


def log_subscription_event(event: str, room_id: Optional[str] = None, **fields: Any) -> None:
    """Room subscription lifecycle: subscribed, failed, resubscribing, unsubscribed."""
    _emit("subscription", event, None, room_id=room_id, **fields)


def log_membership_event(outcome: str, group_id: str, **fields: Any) -> None:
    """Invitation join outcome: joined, already_member or rejected."""
    _emit("membership", outcome, None, group_id=group_id, **fields)
