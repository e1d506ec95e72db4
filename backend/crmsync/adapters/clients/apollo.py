# crmsync/adapters/clients/apollo.py
from __future__ import annotations

import logging
from typing import Any

import httpx

from ...config import settings
from ...domain.errors import ProviderError
from .http_resilience import ResilientHttp

log = logging.getLogger(__name__)

DEFAULT_DEPARTMENTS: tuple[str, ...] = ("operations", "hr", "warehouse")
DEFAULT_SENIORITIES: tuple[str, ...] = ("vp", "head", "director", "manager")


class ApolloClient:
    """
    Firmographics / people provider. The key is passed per call because it is
    resolved per tenant.
    """

    name = "apollo"

    def __init__(self, http: ResilientHttp | None = None, *, base_url: str | None = None) -> None:
        self.http = http or ResilientHttp("apollo")
        self.base_url = (base_url or settings.APOLLO_BASE_URL).rstrip("/")

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "X-Api-Key": api_key,
            "accept": "application/json",
            "Cache-Control": "no-cache",
        }

    async def _call(self, method: str, path: str, api_key: str, **kw: Any) -> dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            resp = await self.http.request(method, url, headers=self._headers(api_key), **kw)
            body = resp.json()
        except httpx.HTTPError as e:
            raise ProviderError(f"apollo {path}: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"apollo {path}: invalid json") from e
        return body if isinstance(body, dict) else {}

    async def firmographics_by_domain(self, domain: str, api_key: str) -> dict[str, Any] | None:
        """Raw organization payload, or None when the provider has nothing for the domain."""
        body = await self._call("GET", "organizations/enrich", api_key, params={"domain": domain})
        org = body.get("organization") or body.get("company")
        return org if isinstance(org, dict) and org else None

    async def people_search(
        self,
        domain: str,
        api_key: str,
        *,
        departments: tuple[str, ...] = DEFAULT_DEPARTMENTS,
        seniorities: tuple[str, ...] = DEFAULT_SENIORITIES,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        payload = {
            "q_organization_domains_list": [domain],
            "person_department_or_subdepartments": list(departments),
            "person_seniorities": list(seniorities),
            "page": 1,
            "per_page": int(limit),
        }
        body = await self._call("POST", "mixed_people/search", api_key, json=payload)
        people = body.get("people") or body.get("contacts") or []
        if not isinstance(people, list):
            return []
        return [p for p in people if isinstance(p, dict)][: int(limit)]

    async def contact_match(self, params: dict[str, Any], api_key: str) -> dict[str, Any] | None:
        payload = {k: v for k, v in params.items() if v not in (None, "")}
        # Revealing personal emails/phones costs credits
        payload.setdefault("reveal_personal_emails", False)
        payload.setdefault("reveal_phone_number", False)
        body = await self._call("POST", "people/match", api_key, json=payload)
        person = body.get("person")
        return person if isinstance(person, dict) and person else None
