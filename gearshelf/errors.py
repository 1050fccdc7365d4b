"""
Pipeline error taxonomy
Resolver and provider errors abort a Preview; DuplicateConflict is a
business outcome of Commit, not a bug.
"""

from typing import List, Tuple


class PipelineError(Exception):
    """Base class for every error raised by the ingestion pipeline."""


class ResolverError(PipelineError):
    """Raised when a URL cannot be turned into a ProductIdentifier."""


class InvalidProductUrl(ResolverError):
    """
    The URL is not a recognisable product URL.

    The UI treats this one as a silent no-op rather than a toast, so it is
    kept apart from network-level failures.
    """

    def __init__(self, url: str, reason: str = 'not a recognised Amazon product URL'):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}")


class UnresolvableLink(ResolverError):
    """A short link did not land on a known storefront within the hop budget."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"could not resolve {url}: {reason}")


class TransportError(PipelineError):
    """Network-level failure (connection error, timeout) from an HttpTransport."""


class ProviderUnavailable(PipelineError):
    """A single provider could not produce metadata; the chain falls through."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.message = message
        super().__init__(f"{provider}: {message}")


class AllProvidersFailed(PipelineError):
    """Every provider in the chain failed. Carries each sub-error."""

    def __init__(self, failures: List[Tuple[str, ProviderUnavailable]]):
        self.failures = list(failures)
        if self.failures:
            detail = '; '.join(f"{name}: {error.message}" for name, error in self.failures)
        else:
            detail = 'no providers configured'
        super().__init__(f"all metadata providers failed ({detail})")

    @property
    def messages(self) -> List[str]:
        return [error.message for _, error in self.failures]


class DuplicateConflict(PipelineError):
    """The actor already owns a collection entry for this identifier."""

    def __init__(self, actor_id: str, identifier: str):
        self.actor_id = actor_id
        self.identifier = identifier
        super().__init__(f"actor {actor_id} already has {identifier} in their collection")


class PersistenceError(PipelineError):
    """Opaque infrastructure failure from the persistence layer."""


class UniqueViolation(PersistenceError):
    """The store rejected a write because actor+identifier already exists."""


class IllegalTransition(PipelineError):
    """An ingestion attempt was moved to a state it cannot reach."""
