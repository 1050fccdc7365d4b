"""
Ingestion Orchestrator
Composes resolver, provider chain, normalizer and matcher into Preview,
Commit and batch refresh operations.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from gearshelf.config import PipelineConfig
from gearshelf.database.store import CatalogStore, InMemoryStore
from gearshelf.database.supabase_store import SupabaseStore
from gearshelf.errors import DuplicateConflict, UniqueViolation
from gearshelf.identity.resolver import IdentifierResolver, add_associate_tag
from gearshelf.matching.matcher import CandidateMatcher
from gearshelf.models import (
    CatalogEntry,
    CollectionEntry,
    CommitSelection,
    CustomSnapshot,
    EntryKind,
    IngestionAttempt,
    IngestionState,
    PreviewResult,
    ProductMetadata,
    RefreshFailure,
    RefreshReport,
    utc_now,
)
from gearshelf.providers.chain import MetadataProviderChain, build_chain
from gearshelf.providers.og_metadata import OgMetadataProvider
from gearshelf.providers.pa_api import PaApiProvider
from gearshelf.providers.registry import ProviderRegistry
from gearshelf.standardization.extractor import (
    GeminiAttributeExtractor,
    KeywordAttributeExtractor,
    detect_category,
)
from gearshelf.standardization.normalizer import merge_missing, normalize
from gearshelf.standardization.schemas import AttributeSet, CategoryKind
from gearshelf.utils.http import HttpTransport, RequestsTransport

logger = logging.getLogger(__name__)


def _consume_commit_result(task: asyncio.Future) -> None:
    """Mark a shielded commit's error as retrieved; _commit has already logged it."""
    if not task.cancelled():
        task.exception()


class IngestionOrchestrator:
    """
    Runs ingestion attempts for actors.

    - preview() has no side effects and may be abandoned at any point.
    - commit() rechecks ownership right before writing and always reaches
      COMMITTED or ABORTED, even if the caller is cancelled.
    - refresh_all() isolates per-entry failures and returns a tally.
    """

    def __init__(
        self,
        resolver: IdentifierResolver,
        chain: MetadataProviderChain,
        store: CatalogStore,
        matcher: Optional[CandidateMatcher] = None,
        extractor=None,
        config: Optional[PipelineConfig] = None,
    ):
        self.config = config or PipelineConfig()
        self.resolver = resolver
        self.chain = chain
        self.store = store
        self.matcher = matcher or CandidateMatcher(store, self.config.other_users_sample_size)
        self.extractor = extractor or KeywordAttributeExtractor()

    @classmethod
    def build_default(
        cls,
        config: PipelineConfig,
        store: Optional[CatalogStore] = None,
        transport: Optional[HttpTransport] = None,
    ) -> 'IngestionOrchestrator':
        """
        Wire every component from configuration.

        Uses Supabase when credentials are present, otherwise an empty
        in-memory store.
        """
        transport = transport or RequestsTransport(timeout=config.request_timeout_seconds)

        registry = ProviderRegistry()
        registry.register(PaApiProvider(
            transport,
            config.amazon_access_key,
            config.amazon_secret_key,
            config.amazon_partner_tag,
            min_interval=config.pa_api_min_interval_seconds,
        ))
        registry.register(OgMetadataProvider(transport))

        if store is None:
            if config.has_supabase:
                store = SupabaseStore.from_credentials(
                    config.supabase_url, config.supabase_key, default_locale=config.default_marketplace,
                )
            else:
                logger.warning("SUPABASE_URL/SUPABASE_KEY not set, using in-memory store")
                store = InMemoryStore()

        if config.use_gemini_extraction:
            extractor = GeminiAttributeExtractor(config.gemini_api_key, config.gemini_model)
        else:
            extractor = KeywordAttributeExtractor()

        return cls(
            resolver=IdentifierResolver(transport, max_hops=config.max_redirect_hops),
            chain=build_chain(registry, config),
            store=store,
            extractor=extractor,
            config=config,
        )

    async def preview(self, raw_url: str, actor_id: str, category=None) -> PreviewResult:
        """
        Resolve, fetch, normalize and match one URL without persisting anything.

        Args:
            raw_url: Any accepted Amazon URL
            actor_id: Actor the match report is computed for
            category: Optional CategoryKind (or value) overriding title detection

        Returns:
            PreviewResult. An actor who already owns the product gets a normal
            result with match_report.caller_already_has set.

        Raises:
            InvalidProductUrl, UnresolvableLink: URL problems
            AllProvidersFailed: No provider produced metadata
            PersistenceError: Match lookups failed
        """
        chosen_category = CategoryKind.parse(category) if category else None
        attempt = IngestionAttempt(actor_id=actor_id, raw_url=raw_url)

        try:
            attempt.advance(IngestionState.RESOLVING)
            identifier = await self.resolver.resolve(raw_url)
            logger.info("Resolved %s -> %s", raw_url[:80], identifier)

            attempt.advance(IngestionState.FETCHING_METADATA)
            metadata = await self.chain.fetch(identifier)
            logger.info("Fetched %s via %s", identifier, metadata.provider_used)

            detected = chosen_category or detect_category(metadata.title)
            attributes = normalize(detected, await self._extract(metadata, detected))

            attempt.advance(IngestionState.MATCHING)
            report = await self.matcher.match(identifier, actor_id)

            attempt.advance(IngestionState.PREVIEW_READY)
        except (Exception, asyncio.CancelledError) as e:
            attempt.abort(e)
            raise

        return PreviewResult(
            metadata=metadata,
            match_report=report,
            normalized_attributes=attributes,
            detected_category=detected,
            attempt=attempt,
        )

    async def _extract(self, metadata: ProductMetadata, category: CategoryKind) -> Dict[str, Any]:
        try:
            return await self.extractor.extract_async(metadata, category)
        except Exception as e:
            logger.warning("Attribute extraction failed for %s: %s", metadata.identifier, e)
            return {}

    async def commit(self, selection: CommitSelection,
                     attempt: Optional[IngestionAttempt] = None) -> CollectionEntry:
        """
        Create the actor's collection entry for a confirmed selection.

        Args:
            selection: What the actor confirmed
            attempt: The PreviewReady attempt from preview(); a fresh attempt
                starting at IDLE is used when omitted

        Returns:
            The stored CollectionEntry (OFFICIAL when a catalog entry exists and
            was accepted, CUSTOM otherwise)

        Raises:
            DuplicateConflict: The actor already owns this identifier
            AllProvidersFailed: A custom snapshot was needed but no metadata
                could be fetched
            PersistenceError: The store failed
        """
        attempt = attempt or IngestionAttempt(actor_id=selection.actor_id)
        attempt.advance(IngestionState.COMMITTING)

        # Once started, a commit finishes even if the caller goes away
        task = asyncio.ensure_future(self._commit(selection, attempt))
        task.add_done_callback(_consume_commit_result)
        return await asyncio.shield(task)

    async def _commit(self, selection: CommitSelection, attempt: IngestionAttempt) -> CollectionEntry:
        try:
            entry = await self._build_entry(selection)

            if await self.matcher.caller_already_has(selection.identifier, selection.actor_id):
                raise DuplicateConflict(selection.actor_id, str(selection.identifier))

            try:
                stored = await self.store.create_collection_entry(entry)
            except UniqueViolation as e:
                raise DuplicateConflict(selection.actor_id, str(selection.identifier)) from e
        except Exception as e:
            logger.info("Commit of %s for %s aborted: %s", selection.identifier, selection.actor_id, e)
            attempt.abort(e)
            raise

        attempt.advance(IngestionState.COMMITTED)
        logger.info("Committed %s entry %s for %s", stored.kind.value, selection.identifier, selection.actor_id)
        return stored

    async def _build_entry(self, selection: CommitSelection) -> CollectionEntry:
        identifier = selection.identifier
        category = CategoryKind.parse(selection.category)

        if selection.accept_official:
            catalog_entry = await self.store.find_catalog_by_identifier(identifier)
            if catalog_entry is not None:
                return CollectionEntry(
                    actor_id=selection.actor_id,
                    identifier=identifier,
                    kind=EntryKind.OFFICIAL,
                    catalog_entry_id=catalog_entry.id,
                    note=selection.note,
                    color_id=selection.color_id,
                )

        metadata = selection.metadata
        if metadata is None:
            metadata = await self.chain.fetch(identifier)

        attributes = self._final_attributes(category, selection.attributes)
        canonical_url = identifier.canonical_url()

        snapshot = CustomSnapshot(
            title=(selection.custom_title or '').strip() or metadata.title,
            image_url=metadata.image_url or self.config.placeholder_image,
            canonical_url=canonical_url,
            category=category,
            description=metadata.description,
            attributes=attributes.to_dict(),
            provider_used=metadata.provider_used,
            affiliate_url=add_associate_tag(canonical_url, selection.associate_tag)
            if selection.associate_tag else None,
        )
        return CollectionEntry(
            actor_id=selection.actor_id,
            identifier=identifier,
            kind=EntryKind.CUSTOM,
            snapshot=snapshot,
            note=selection.note,
            color_id=selection.color_id,
        )

    def _final_attributes(self, category: CategoryKind, attributes) -> AttributeSet:
        if isinstance(attributes, AttributeSet):
            if attributes.category is category:
                return attributes
            return normalize(category, attributes.to_dict())
        return normalize(category, attributes or {})

    async def refresh_all(self, stale_after_hours: Optional[float] = None) -> RefreshReport:
        """
        Re-run Fetch + Normalize for every active catalog entry.

        Each entry is refreshed independently; one entry's failure is
        recorded in the report and never stops the batch. Nothing is retried.

        Args:
            stale_after_hours: Only refresh entries not updated for this long

        Returns:
            RefreshReport with the success count and per-entry failures
        """
        updated_before = None
        if stale_after_hours is not None:
            updated_before = utc_now() - timedelta(hours=stale_after_hours)

        entries = await self.store.list_catalog_entries(updated_before)
        logger.info("Refreshing %d catalog entries", len(entries))
        return await self._run_batch(entries, self._refresh_catalog_entry)

    async def refresh_custom_snapshots(self) -> RefreshReport:
        """Same tally semantics over custom collection snapshots."""
        entries = [entry for entry in await self.store.list_custom_entries() if entry.snapshot]
        logger.info("Refreshing %d custom snapshots", len(entries))
        return await self._run_batch(entries, self._refresh_custom_entry)

    async def _run_batch(self, entries: List, refresh) -> RefreshReport:
        semaphore = asyncio.Semaphore(max(1, self.config.refresh_concurrency))

        async def refresh_one(entry) -> Optional[RefreshFailure]:
            async with semaphore:
                try:
                    await refresh(entry)
                except Exception as e:
                    logger.warning("Refresh of %s failed: %s", entry.identifier, e)
                    return RefreshFailure(identifier=entry.identifier.asin, error=str(e))
            return None

        results = await asyncio.gather(*(refresh_one(entry) for entry in entries))
        failures = [result for result in results if result is not None]

        report = RefreshReport(
            total=len(entries),
            success_count=len(entries) - len(failures),
            failures=failures,
        )
        logger.info("Refresh finished: %d succeeded, %d failed", report.success_count, report.failed_count)
        return report

    async def _refresh_catalog_entry(self, entry: CatalogEntry) -> CatalogEntry:
        metadata = await self.chain.fetch(entry.identifier)
        fresh = normalize(entry.category, await self._extract(metadata, entry.category))

        # Curated values stay; refresh only fills gaps
        entry.attributes = merge_missing(entry.attributes, fresh)
        if metadata.image_url and metadata.image_url != self.config.placeholder_image:
            entry.image_url = metadata.image_url
        if metadata.description:
            entry.description = metadata.description
        if not entry.manufacturer and metadata.brand:
            entry.manufacturer = metadata.brand
        if not entry.name:
            entry.name = metadata.title
        entry.updated_at = utc_now()

        return await self.store.update_catalog_entry(entry)

    async def _refresh_custom_entry(self, entry: CollectionEntry) -> CollectionEntry:
        metadata = await self.chain.fetch(entry.identifier)

        snapshot = entry.snapshot
        snapshot.title = metadata.title
        if metadata.image_url and metadata.image_url != self.config.placeholder_image:
            snapshot.image_url = metadata.image_url
        if metadata.description:
            snapshot.description = metadata.description
        snapshot.provider_used = metadata.provider_used
        entry.updated_at = utc_now()

        return await self.store.update_collection_entry(entry)

    async def find_promotion_candidates(self, min_users: Optional[int] = None):
        return await self.matcher.find_promotion_candidates(
            self.config.promotion_min_users if min_users is None else min_users
        )
