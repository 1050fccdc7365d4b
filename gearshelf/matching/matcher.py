"""
Candidate matcher
Cross-references an identifier against the catalog, other actors' custom
entries and the caller's own collection. Read-only.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List

from gearshelf.database.store import CatalogStore
from gearshelf.models import CollectionEntry, MatchReport, ProductIdentifier, PromotionCandidate

logger = logging.getLogger(__name__)


class CandidateMatcher:
    """
    Classifies an identifier for one actor.

    Absence of data is a valid report. PersistenceError from the store is
    not swallowed: a failed lookup must not look like "nothing found".
    """

    def __init__(self, store: CatalogStore, sample_size: int = 5):
        self.store = store
        self.sample_size = sample_size

    async def match(self, identifier: ProductIdentifier, actor_id: str) -> MatchReport:
        """
        Args:
            identifier: Resolved product identifier
            actor_id: Actor the report is computed for

        Returns:
            MatchReport; report.outcome gives DUPLICATE, OFFICIAL_AVAILABLE or NEW
        """
        catalog_entry, caller_entry, others = await asyncio.gather(
            self.store.find_catalog_by_identifier(identifier),
            self.store.find_collection_entry(actor_id, identifier),
            self._other_users(identifier, actor_id),
        )
        other_count, other_sample = others

        report = MatchReport(
            identifier=identifier,
            catalog_entry=catalog_entry,
            other_users_count=other_count,
            other_users_sample=other_sample,
            caller_already_has=caller_entry is not None,
            caller_entry=caller_entry,
        )
        logger.debug("Match %s for %s: %s (%d other users)",
                     identifier, actor_id, report.outcome.value, other_count)
        return report

    async def _other_users(self, identifier: ProductIdentifier, actor_id: str):
        return await asyncio.gather(
            self.store.count_other_entries(identifier, actor_id),
            self.store.sample_other_entries(identifier, actor_id, self.sample_size),
        )

    async def caller_already_has(self, identifier: ProductIdentifier, actor_id: str) -> bool:
        """The one check Commit repeats right before writing."""
        return await self.store.find_collection_entry(actor_id, identifier) is not None

    async def find_promotion_candidates(self, min_users: int = 2) -> List[PromotionCandidate]:
        """
        Custom products added by at least min_users actors that have no
        catalog entry yet, most popular first.
        """
        grouped: Dict[str, List[CollectionEntry]] = defaultdict(list)
        for entry in await self.store.list_custom_entries():
            if entry.snapshot is None or not entry.snapshot.potential_for_promotion:
                continue
            grouped[entry.identifier.asin].append(entry)

        candidates = []
        for entries in grouped.values():
            actor_ids = sorted({entry.actor_id for entry in entries})
            if len(actor_ids) < min_users:
                continue

            identifier = entries[0].identifier
            if await self.store.find_catalog_by_identifier(identifier) is not None:
                continue

            # Most recently updated snapshot represents the product
            latest = max(entries, key=lambda entry: entry.updated_at)
            candidates.append(PromotionCandidate(
                identifier=identifier,
                title=latest.snapshot.title,
                image_url=latest.snapshot.image_url,
                category=latest.snapshot.category,
                user_count=len(actor_ids),
                actor_ids=actor_ids,
            ))

        candidates.sort(key=lambda candidate: (-candidate.user_count, candidate.identifier.asin))
        return candidates
