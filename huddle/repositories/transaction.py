"""One-shot transactions spanning several statements or repositories."""

from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.orm import Session

from huddle.core.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def transaction_scope(session_factory: Callable[[], Session]) -> Iterator[Session]:
    """Yield a fresh session; commit when the block exits cleanly.

    Room creation uses this so a direct room and both of its memberships land
    together, and so a lost ``room_key`` race surfaces as an ``IntegrityError``
    at commit time where the caller can turn it into a read of the winner.
    Repository methods accept the yielded session via ``session=`` to join in.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        logger.debug(f"Rolling back transaction: {type(e).__name__}")
        session.rollback()
        raise
    finally:
        session.close()
