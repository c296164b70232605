"""Health check endpoints for system monitoring."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from huddle.core.config import get_settings
from huddle.core.messaging.broker import get_message_broker
from huddle.core.messaging.feed import LocalChangeFeed
from huddle.db.db import get_db
from huddle.dependencies import get_change_feed

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "huddle-backend"}


@router.get("/health/messaging")
async def messaging_health(
    feed: Annotated[LocalChangeFeed, Depends(get_change_feed)],
):
    """Health check for the change feed and its broker relay."""
    result = {"feed_subscribers": feed.subscriber_count}
    if not get_settings().FEED_RELAY_ENABLED:
        return {**result, "status": "healthy", "relay": "disabled"}

    try:
        broker_connected = get_message_broker().is_connected()
    except Exception as e:
        return {
            **result,
            "status": "unhealthy",
            "relay": "enabled",
            "broker_connected": False,
            "error": str(e),
        }
    return {
        **result,
        "status": "healthy" if broker_connected else "unhealthy",
        "relay": "enabled",
        "broker_connected": broker_connected,
    }


@router.get("/health/database")
def database_health(db: Session = Depends(get_db)):
    """Health check for database connection."""
    try:
        # Simple query to test database connection
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "database_connected": True}
    except Exception as e:
        return {"status": "unhealthy", "database_connected": False, "error": str(e)}
