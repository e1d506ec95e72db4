from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from .tree import UNSET


class FieldKind(str, enum.Enum):
    scalar = "scalar"
    url = "url"
    tag_list = "tag_list"
    list = "list"
    entity_list = "entity_list"


TAG_LIST_LIMIT = 200
LIST_LIMIT = 200
ENTITY_LIST_LIMIT = 25


def sanitize_url(value: Any) -> str | None:
    """
    Coerce "example.com/x" style values into absolute https URLs.
    Returns None for anything that does not parse into scheme + host.
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if not s.lower().startswith(("http://", "https://")):
        s = f"https://{s}"
    try:
        parts = urlsplit(s)
    except ValueError:
        return None
    if not parts.netloc or " " in parts.netloc:
        return None
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", parts.query, parts.fragment))


def extract_domain(url: Any) -> str | None:
    clean = sanitize_url(url)
    if not clean:
        return None
    host = urlsplit(clean).hostname or ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


@dataclass(frozen=True)
class FieldSpec:
    """
    One known field of a canonical record.

    `id` doubles as the dotted path into the record document and as the key
    used in the provenance map.
    """
    id: str
    kind: FieldKind = FieldKind.scalar
    limit: int | None = None
    projection: tuple[str, ...] = ()

    @property
    def path(self) -> tuple[str, ...]:
        return tuple(self.id.split("."))

    def normalize(self, value: Any) -> Any:
        """
        Shape a candidate for storage. UNSET means "nothing usable", which the
        resolver treats exactly like an absent candidate. None passes through
        as an explicit null.
        """
        if value is UNSET or value is None:
            return value

        if self.kind == FieldKind.url:
            clean = sanitize_url(value)
            return UNSET if clean is None else clean

        if self.kind == FieldKind.tag_list:
            if not isinstance(value, (list, tuple, set)):
                return UNSET
            seen: set[str] = set()
            out: list[str] = []
            for raw in value:
                tag = str(raw or "").strip().lower()
                if not tag or tag in seen:
                    continue
                seen.add(tag)
                out.append(tag)
            return out[: self.limit or TAG_LIST_LIMIT]

        if self.kind == FieldKind.list:
            if not isinstance(value, (list, tuple)):
                return UNSET
            return list(value)[: self.limit or LIST_LIMIT]

        if self.kind == FieldKind.entity_list:
            if not isinstance(value, (list, tuple)):
                return UNSET
            out_entities: list[dict[str, Any]] = []
            for item in list(value)[: self.limit or ENTITY_LIST_LIMIT]:
                if not isinstance(item, dict):
                    continue
                out_entities.append({k: item.get(k) for k in self.projection})
            return out_entities

        return value


def _f(field_id: str, kind: FieldKind = FieldKind.scalar, **kw: Any) -> FieldSpec:
    return FieldSpec(id=field_id, kind=kind, **kw)


COMPANY_FIELDS: tuple[FieldSpec, ...] = (
    _f("name"),
    _f("domain"),
    _f("websiteUrl", FieldKind.url),
    _f("logoUrl", FieldKind.url),
    _f("phone"),
    _f("foundedYear"),
    _f("public.symbol"),
    _f("public.exchange"),
    _f("marketCapPrinted"),
    _f("employeeCount"),
    _f("revenue.amount"),
    _f("revenue.printed"),
    _f("industryLabel"),
    _f("description"),
    _f("keywords", FieldKind.tag_list, limit=TAG_LIST_LIMIT),
    _f("tags", FieldKind.tag_list, limit=TAG_LIST_LIMIT),
    _f("topJobTitles", FieldKind.list, limit=LIST_LIMIT),
    _f("techStack.names", FieldKind.list, limit=LIST_LIMIT),
    _f("techStack.current", FieldKind.entity_list, limit=LIST_LIMIT, projection=("uid", "name", "category")),
    _f("industries", FieldKind.list, limit=LIST_LIMIT),
    _f("secondaryIndustries", FieldKind.list, limit=LIST_LIMIT),
    _f("address.street"),
    _f("address.city"),
    _f("address.state"),
    _f("address.postalCode"),
    _f("address.country"),
    _f("address.raw"),
    _f("social.linkedin", FieldKind.url),
    _f("social.twitter", FieldKind.url),
    _f("social.facebook", FieldKind.url),
    _f("social.crunchbase", FieldKind.url),
    _f("orgChart.sector"),
    _f("orgChart.departmentHeadcount"),
    _f("orgChart.hasRootPeople"),
    _f("suborganizations.count"),
    _f(
        "suborganizations.top",
        FieldKind.entity_list,
        limit=ENTITY_LIST_LIMIT,
        projection=("id", "name", "websiteUrl"),
    ),
)

CONTACT_FIELDS: tuple[FieldSpec, ...] = (
    _f("email"),
    _f("emailStatus"),
    _f("phone"),
    _f("title"),
    _f("headline"),
    _f("seniority"),
    _f("departments", FieldKind.list, limit=LIST_LIMIT),
    _f("photoUrl", FieldKind.url),
    _f("social.linkedin", FieldKind.url),
    _f("social.twitter", FieldKind.url),
    _f("address.city"),
    _f("address.state"),
    _f("address.country"),
    _f("employment.organizationName"),
    _f("employment.organizationId"),
)


def _build_catalog(*groups: tuple[FieldSpec, ...]) -> dict[str, FieldSpec]:
    catalog: dict[str, FieldSpec] = {}
    for group in groups:
        for spec in group:
            prior = catalog.get(spec.id)
            if prior is not None and prior != spec:
                raise ValueError(f"conflicting catalog entries for {spec.id!r}")
            catalog[spec.id] = spec
    return catalog


FIELD_CATALOG: dict[str, FieldSpec] = _build_catalog(COMPANY_FIELDS, CONTACT_FIELDS)

COMPANY_FIELD_IDS: frozenset[str] = frozenset(f.id for f in COMPANY_FIELDS)
CONTACT_FIELD_IDS: frozenset[str] = frozenset(f.id for f in CONTACT_FIELDS)

# Describe the sync itself, not business data: always overwritten under integrations.<source>.
INTEGRATION_METADATA_KEYS: tuple[str, ...] = ("lastSyncedAt", "organizationId", "signalStrength", "source")


def field(field_id: str) -> FieldSpec:
    try:
        return FIELD_CATALOG[field_id]
    except KeyError:
        raise KeyError(f"unknown field id {field_id!r}; add it to the catalog") from None
