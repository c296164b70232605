"""Sender profile cache.

Each distinct sender is looked up at most once per session through a batch
call. Labels never wait on a lookup: an unresolved sender shows the
placeholder until the cache is filled.
"""

from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set
from uuid import UUID

from huddle.core.logging import get_logger
from huddle.schemas import SenderProfile

logger = get_logger(__name__)

PLACEHOLDER_LABEL = "Unknown user"

ProfileFetcher = Callable[[List[UUID]], Awaitable[List[SenderProfile]]]


class ProfileCache:
    def __init__(self, fetch: ProfileFetcher):
        self._fetch = fetch
        self._profiles: Dict[UUID, SenderProfile] = {}
        self._unknown: Set[UUID] = set()
        self._inflight: Set[UUID] = set()

    def prime(self, profile: SenderProfile) -> None:
        """Seed a profile known locally, such as the signed-in user."""
        self._profiles[profile.id] = profile
        self._unknown.discard(profile.id)

    def peek(self, user_id: UUID) -> Optional[SenderProfile]:
        return self._profiles.get(user_id)

    def label_for(self, user_id: UUID) -> str:
        profile = self._profiles.get(user_id)
        return profile.label if profile else PLACEHOLDER_LABEL

    def missing(self, user_ids: Iterable[UUID]) -> List[UUID]:
        """Ids worth fetching: not cached, not known-absent, not already in flight."""
        return [
            user_id
            for user_id in dict.fromkeys(user_ids)
            if user_id not in self._profiles
            and user_id not in self._unknown
            and user_id not in self._inflight
        ]

    async def resolve_many(self, user_ids: Iterable[UUID]) -> Dict[UUID, SenderProfile]:
        """Fetch whatever is missing in one batch and return the cached profiles."""
        wanted = list(dict.fromkeys(user_ids))
        to_fetch = self.missing(wanted)
        if to_fetch:
            self._inflight.update(to_fetch)
            try:
                fetched = await self._fetch(to_fetch)
            finally:
                self._inflight.difference_update(to_fetch)
            for profile in fetched:
                self._profiles[profile.id] = profile
            # Deleted users stay unlabeled instead of being refetched forever
            self._unknown.update(set(to_fetch) - {p.id for p in fetched})
            logger.debug(f"Resolved {len(fetched)} of {len(to_fetch)} sender profiles")
        return {uid: self._profiles[uid] for uid in wanted if uid in self._profiles}

    def invalidate(self, user_id: Optional[UUID] = None) -> None:
        """Forget one profile (after a profile change) or everything."""
        if user_id is None:
            self._profiles.clear()
            self._unknown.clear()
            return
        self._profiles.pop(user_id, None)
        self._unknown.discard(user_id)
