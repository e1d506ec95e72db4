# crmsync/adapters/credentials.py
from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings, settings as default_settings
from .repos.credentials import CredentialRepository

log = logging.getLogger(__name__)

OPENAI = "openai"
APOLLO = "apollo"
SERP = "serp"


class CredentialResolver(Protocol):
    async def resolve(self, tenant_id: str, provider: str) -> str | None: ...


class SettingsCredentialResolver:
    """Process-wide keys from settings / environment."""

    def __init__(self, cfg: Settings | None = None) -> None:
        self.cfg = cfg or default_settings

    async def resolve(self, tenant_id: str, provider: str) -> str | None:
        if provider == APOLLO and not self.cfg.apollo_wanted():
            return None
        key = {
            OPENAI: self.cfg.OPENAI_API_KEY,
            APOLLO: self.cfg.APOLLO_API_KEY,
            SERP: self.cfg.SERP_API_KEY,
        }.get(provider)
        return key or None


class DbCredentialResolver:
    """Per-tenant secrets stored in provider_credentials."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], cfg: Settings | None = None) -> None:
        self.session_maker = session_maker
        self.cfg = cfg or default_settings

    async def resolve(self, tenant_id: str, provider: str) -> str | None:
        if provider == APOLLO and not self.cfg.apollo_wanted():
            return None
        try:
            async with self.session_maker() as session:
                secret = await CredentialRepository(session).get_secret(tenant_id, provider)
        except SQLAlchemyError as e:
            log.warning("credential lookup failed tenant=%s provider=%s err=%s", tenant_id, provider, type(e).__name__)
            return None
        return secret or None


class ChainedCredentialResolver:
    """First resolver that yields a key wins; any failure degrades to None."""

    def __init__(self, *resolvers: CredentialResolver) -> None:
        self.resolvers = resolvers

    async def resolve(self, tenant_id: str, provider: str) -> str | None:
        for r in self.resolvers:
            try:
                key = await r.resolve(tenant_id, provider)
            except Exception as e:  # resolver contract: never raise
                log.warning("credential resolver %s failed: %s", type(r).__name__, e)
                continue
            if key:
                return key
        return None
