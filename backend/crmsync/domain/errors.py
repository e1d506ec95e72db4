from __future__ import annotations


class EnrichmentError(Exception):
    """Base for everything the enrichment core raises on purpose."""


class SourceUnavailable(EnrichmentError):
    """A single source fetch failed or came back empty. Never fatal."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class ExtractionParseError(EnrichmentError):
    """Model output was not JSON or did not validate against the profile schema."""


class ProviderError(EnrichmentError):
    """An external provider (LLM, firmographics, search) call failed."""


class ProviderAuthMissing(ProviderError):
    """No credential resolved for (tenant, provider); the dependent step is skipped."""

    def __init__(self, provider: str, tenant_id: str | None = None) -> None:
        super().__init__(f"no credential for provider={provider!r} tenant={tenant_id!r}")
        self.provider = provider
        self.tenant_id = tenant_id


class PersistenceError(EnrichmentError):
    """The record store rejected a read or write. Fatal for the current run."""


class ConcurrentUpdateError(PersistenceError):
    """Optimistic version check failed; another writer updated the record first."""


class InputValidationError(EnrichmentError):
    """Missing identifiers or authorization at the boundary; rejected before any work."""


class RecordNotFound(InputValidationError):
    """The addressed tenant/entity has no canonical record."""
