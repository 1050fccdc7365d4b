"""
Pipeline data model
Value objects passed between resolver, providers, matcher and orchestrator,
plus the records the persistence layer stores.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from gearshelf.errors import IllegalTransition
from gearshelf.standardization.schemas import AttributeSet, CategoryKind


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProductIdentifier:
    """
    Canonical product key (ASIN) plus the storefront it was seen on.

    Two identifiers are equal when their ASINs match; the locale is only a
    hint for which marketplace to query.
    """

    asin: str
    locale: str = field(default='co.jp', compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'asin', self.asin.strip().upper())

    def canonical_url(self) -> str:
        return f"https://www.amazon.{self.locale}/dp/{self.asin}"

    def __str__(self) -> str:
        return self.asin


@dataclass
class ProductMetadata:
    """Descriptive metadata for one product, as returned by the provider chain."""

    identifier: ProductIdentifier
    title: str
    image_url: str
    provider_used: str = ''
    description: Optional[str] = None
    price: Optional[float] = None
    brand: Optional[str] = None
    features: List[str] = field(default_factory=list)
    raw_specs: Dict[str, str] = field(default_factory=dict)

    @property
    def canonical_url(self) -> str:
        return self.identifier.canonical_url()


@dataclass
class CatalogEntry:
    """Curated, admin-owned product shared by every actor."""

    identifier: ProductIdentifier
    name: str
    category: CategoryKind
    image_url: str = ''
    description: Optional[str] = None
    manufacturer: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    is_active: bool = True
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class CustomSnapshot:
    """Standalone copy of product data for an entry that has no catalog record."""

    title: str
    image_url: str
    canonical_url: str
    category: CategoryKind
    description: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    provider_used: str = ''
    affiliate_url: Optional[str] = None
    potential_for_promotion: bool = True


class EntryKind(Enum):
    OFFICIAL = 'official'
    CUSTOM = 'custom'


@dataclass
class CollectionEntry:
    """
    An actor's reference to a product.

    OFFICIAL entries point at a CatalogEntry by identifier; CUSTOM entries
    carry their own snapshot.
    """

    actor_id: str
    identifier: ProductIdentifier
    kind: EntryKind
    catalog_entry_id: Optional[int] = None
    snapshot: Optional[CustomSnapshot] = None
    note: Optional[str] = None
    color_id: Optional[int] = None
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_custom(self) -> bool:
        return self.kind is EntryKind.CUSTOM


class MatchOutcome(Enum):
    DUPLICATE = 'duplicate'
    OFFICIAL_AVAILABLE = 'official_available'
    NEW = 'new'


@dataclass
class MatchReport:
    """Cross-reference of one identifier against catalog and collections. Never persisted."""

    identifier: ProductIdentifier
    catalog_entry: Optional[CatalogEntry] = None
    other_users_count: int = 0
    other_users_sample: List[CollectionEntry] = field(default_factory=list)
    caller_already_has: bool = False
    caller_entry: Optional[CollectionEntry] = None

    @property
    def outcome(self) -> MatchOutcome:
        if self.caller_already_has:
            return MatchOutcome.DUPLICATE
        if self.catalog_entry is not None:
            return MatchOutcome.OFFICIAL_AVAILABLE
        return MatchOutcome.NEW


class IngestionState(Enum):
    IDLE = 'idle'
    RESOLVING = 'resolving'
    FETCHING_METADATA = 'fetching_metadata'
    MATCHING = 'matching'
    PREVIEW_READY = 'preview_ready'
    COMMITTING = 'committing'
    COMMITTED = 'committed'
    ABORTED = 'aborted'


_TRANSITIONS = {
    IngestionState.IDLE: {IngestionState.RESOLVING, IngestionState.COMMITTING},
    IngestionState.RESOLVING: {IngestionState.FETCHING_METADATA},
    IngestionState.FETCHING_METADATA: {IngestionState.MATCHING},
    IngestionState.MATCHING: {IngestionState.PREVIEW_READY},
    IngestionState.PREVIEW_READY: {IngestionState.COMMITTING},
    IngestionState.COMMITTING: {IngestionState.COMMITTED},
    IngestionState.COMMITTED: set(),
    IngestionState.ABORTED: set(),
}


@dataclass
class IngestionAttempt:
    """
    Lifecycle of one ingestion attempt:
    Idle -> Resolving -> FetchingMetadata -> Matching -> PreviewReady
    -> Committing -> Committed, with Aborted reachable from any live state.

    A Commit without a prior Preview may start from Idle.
    """

    actor_id: str
    raw_url: Optional[str] = None
    state: IngestionState = IngestionState.IDLE
    history: List[IngestionState] = field(default_factory=list)
    error: Optional[str] = None

    def advance(self, new_state: IngestionState) -> None:
        allowed = set(_TRANSITIONS[self.state])
        if self.state not in (IngestionState.COMMITTED, IngestionState.ABORTED):
            allowed.add(IngestionState.ABORTED)
        if new_state not in allowed:
            raise IllegalTransition(f"cannot move from {self.state.value} to {new_state.value}")
        self.history.append(self.state)
        self.state = new_state

    def abort(self, error: BaseException) -> None:
        self.error = str(error)
        if self.state not in (IngestionState.COMMITTED, IngestionState.ABORTED):
            self.advance(IngestionState.ABORTED)


@dataclass
class PreviewResult:
    metadata: ProductMetadata
    match_report: MatchReport
    normalized_attributes: AttributeSet
    detected_category: CategoryKind
    attempt: Optional[IngestionAttempt] = None

    @property
    def identifier(self) -> ProductIdentifier:
        return self.metadata.identifier


@dataclass
class CommitSelection:
    """What the actor confirmed after reviewing a PreviewResult."""

    actor_id: str
    identifier: ProductIdentifier
    category: CategoryKind
    attributes: Union[AttributeSet, Dict[str, Any], None] = None
    accept_official: bool = True
    metadata: Optional[ProductMetadata] = None
    note: Optional[str] = None
    color_id: Optional[int] = None
    custom_title: Optional[str] = None
    associate_tag: Optional[str] = None


@dataclass
class RefreshFailure:
    identifier: str
    error: str


@dataclass
class RefreshReport:
    total: int = 0
    success_count: int = 0
    failures: List[RefreshFailure] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


@dataclass
class PromotionCandidate:
    """A custom product added by several actors that has no catalog record yet."""

    identifier: ProductIdentifier
    title: str
    image_url: str
    category: CategoryKind
    user_count: int
    actor_ids: List[str] = field(default_factory=list)
