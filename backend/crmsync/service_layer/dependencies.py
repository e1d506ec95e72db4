# crmsync/service_layer/dependencies.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..adapters.clients.apollo import ApolloClient
from ..adapters.clients.serp import SerpUrlDiscovery
from ..adapters.clients.web_text import HttpTextFetcher
from ..adapters.credentials import ChainedCredentialResolver, CredentialResolver, DbCredentialResolver, SettingsCredentialResolver
from ..adapters.llm import LanguageModel, OpenAILanguageModel
from .aggregator import TextSource


class FirmographicsProvider(Protocol):
    name: str

    async def firmographics_by_domain(self, domain: str, api_key: str) -> dict[str, Any] | None: ...

    async def people_search(self, domain: str, api_key: str, **kw: Any) -> list[dict[str, Any]]: ...

    async def contact_match(self, params: dict[str, Any], api_key: str) -> dict[str, Any] | None: ...


class UrlDiscovery(Protocol):
    name: str

    async def discover(self, company_name: str, api_key: str) -> dict[str, str]: ...


@dataclass
class EnrichmentDeps:
    """Everything a pipeline run talks to. Tests swap in fakes field by field."""
    session_maker: async_sessionmaker[AsyncSession]
    fetcher: TextSource
    llm: LanguageModel
    credentials: CredentialResolver
    firmographics: FirmographicsProvider | None = None
    discovery: UrlDiscovery | None = None
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)


def build_enrichment_deps(session_maker: async_sessionmaker[AsyncSession]) -> EnrichmentDeps:
    return EnrichmentDeps(
        session_maker=session_maker,
        fetcher=HttpTextFetcher(),
        llm=OpenAILanguageModel(),
        credentials=ChainedCredentialResolver(
            SettingsCredentialResolver(),
            DbCredentialResolver(session_maker),
        ),
        firmographics=ApolloClient(),
        discovery=SerpUrlDiscovery(),
    )
