from __future__ import annotations

from typing import Any, Mapping

from .fields import sanitize_url
from .profile import CompanyProfile, RecommendedContact
from .tree import UNSET, is_empty

APOLLO_SOURCE = "apollo"
AI_SOURCE = "ai"
APOLLO_SOURCE_LABEL = "apollo.organizations/enrich"
APOLLO_CONTACT_SOURCE_LABEL = "apollo.people/match"

MAX_TITLES_FROM_PEOPLE = 6
MAX_PEOPLE_RECOMMENDATIONS = 8
MAX_RECOMMENDED_CONTACTS = 12


def _v(value: Any) -> Any:
    # Provider null/missing means "nothing to say", not "clear the field"
    return UNSET if value is None else value


def _list_or_unset(value: Any) -> Any:
    return list(value) if isinstance(value, (list, tuple)) else UNSET


def _url(value: Any) -> Any:
    clean = sanitize_url(value)
    return UNSET if clean is None else clean


def pick_phone(org: Mapping[str, Any]) -> Any:
    primary = org.get("primary_phone") or {}
    if not isinstance(primary, Mapping):
        primary = {}
    return _v(
        primary.get("sanitized_number")
        or org.get("sanitized_phone")
        or primary.get("number")
        or org.get("phone")
        or None
    )


def organization_candidates(org: Mapping[str, Any], domain: str | None = None) -> dict[str, Any]:
    """Map a provider organization payload onto catalog field ids."""
    org = org or {}
    dom = (org.get("primary_domain") or domain or "").lower()

    keywords = org.get("keywords")
    root_people = org.get("org_chart_root_people_ids")

    return {
        "name": _v(org.get("name")),
        "domain": dom or UNSET,
        "websiteUrl": _url(org.get("website_url")),
        "logoUrl": _url(org.get("logo_url")),
        "phone": pick_phone(org),
        "foundedYear": _v(org.get("founded_year")),
        "public.symbol": _v(org.get("publicly_traded_symbol")),
        "public.exchange": _v(org.get("publicly_traded_exchange")),
        "marketCapPrinted": _v(org.get("market_cap")),
        "employeeCount": _v(org.get("estimated_num_employees")),
        "revenue.amount": _v(org.get("annual_revenue") if org.get("annual_revenue") is not None else org.get("organization_revenue")),
        "revenue.printed": _v(org.get("annual_revenue_printed") or org.get("organization_revenue_printed")),
        "industryLabel": _v(org.get("industry")),
        "keywords": _list_or_unset(keywords),
        "techStack.names": _list_or_unset(org.get("technology_names")),
        "techStack.current": _list_or_unset(org.get("current_technologies")),
        "industries": _list_or_unset(org.get("industries")),
        "secondaryIndustries": _list_or_unset(org.get("secondary_industries")),
        "address.street": _v(org.get("street_address")),
        "address.city": _v(org.get("city")),
        "address.state": _v(org.get("state")),
        "address.postalCode": _v(org.get("postal_code")),
        "address.country": _v(org.get("country")),
        "address.raw": _v(org.get("raw_address")),
        "social.linkedin": _url(org.get("linkedin_url")),
        "social.twitter": _url(org.get("twitter_url")),
        "social.facebook": _url(org.get("facebook_url")),
        "social.crunchbase": _url(org.get("crunchbase_url")),
        "orgChart.sector": _v(org.get("org_chart_sector")),
        "orgChart.departmentHeadcount": _v(org.get("departmental_head_count")),
        "orgChart.hasRootPeople": isinstance(root_people, list) and len(root_people) > 0,
        "suborganizations.count": _v(org.get("num_suborganizations")),
        "suborganizations.top": (
            [
                {"id": s.get("id"), "name": s.get("name"), "websiteUrl": s.get("website_url")}
                for s in org["suborganizations"]
                if isinstance(s, Mapping)
            ]
            if isinstance(org.get("suborganizations"), list)
            else UNSET
        ),
    }


def organization_summary(org: Mapping[str, Any]) -> dict[str, Any]:
    """Compact view stored under firmographics.<source>; None values dropped."""
    org = org or {}
    summary = {
        "id": org.get("id"),
        "name": org.get("name"),
        "domain": org.get("primary_domain") or org.get("domain"),
        "industry": org.get("industry"),
        "employeeCount": org.get("estimated_num_employees"),
        "revenueRange": org.get("annual_revenue_printed") or org.get("organization_revenue_printed"),
        "foundedYear": org.get("founded_year"),
        "shortDescription": org.get("short_description"),
        "websiteUrl": org.get("website_url"),
        "linkedinUrl": org.get("linkedin_url"),
        "twitterUrl": org.get("twitter_url"),
    }
    return {k: v for k, v in summary.items() if v is not None}


def person_candidates(person: Mapping[str, Any]) -> dict[str, Any]:
    person = person or {}
    org = person.get("organization") or {}
    if not isinstance(org, Mapping):
        org = {}
    phones = person.get("phone_numbers") or []
    phone = None
    if isinstance(phones, list) and phones and isinstance(phones[0], Mapping):
        phone = phones[0].get("sanitized_number") or phones[0].get("raw_number")

    return {
        "email": _v(person.get("email")),
        "emailStatus": _v(person.get("email_status")),
        "phone": _v(phone),
        "title": _v(person.get("title")),
        "headline": _v(person.get("headline") or person.get("title")),
        "seniority": _v(person.get("seniority")),
        "departments": _list_or_unset(person.get("departments")),
        "photoUrl": _url(person.get("photo_url")),
        "social.linkedin": _url(person.get("linkedin_url")),
        "social.twitter": _url(person.get("twitter_url")),
        "address.city": _v(person.get("city")),
        "address.state": _v(person.get("state")),
        "address.country": _v(person.get("country")),
        "employment.organizationName": _v(org.get("name")),
        "employment.organizationId": _v(person.get("organization_id") or org.get("id")),
    }


def extraction_candidates(profile: CompanyProfile) -> dict[str, Any]:
    """Fields the language-model run is allowed to propose, attributed to source `ai`."""
    return {
        "description": profile.business_summary or UNSET,
        "tags": list(profile.suggested_tags) if profile.suggested_tags else UNSET,
        "topJobTitles": list(profile.top_job_titles) if profile.top_job_titles else UNSET,
    }


def role_of(title: str | None, department: str | None) -> str:
    t = (title or "").lower()
    d = (department or "").lower()
    if "hr" in d or "people" in t or "human resources" in t:
        return "HR"
    if "operations" in d or "ops" in t:
        return "Operations"
    if "warehouse" in t or "warehouse" in d or "logistics" in d:
        return "Warehouse"
    return "Leadership"


def _department(person: Mapping[str, Any]) -> str | None:
    dept = person.get("department")
    if dept:
        return str(dept)
    depts = person.get("departments")
    if isinstance(depts, list) and depts:
        return str(depts[0])
    return None


def titles_from_people(people: list[Mapping[str, Any]]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for p in people:
        t = str(p.get("title") or "").strip()
        if t and t not in seen:
            seen.add(t)
            out.append(t)
    return out[:MAX_TITLES_FROM_PEOPLE]


def augment_profile_with_people(profile: CompanyProfile, people: list[Mapping[str, Any]]) -> CompanyProfile:
    """
    Fill empty topJobTitles from people titles and append role-inferred
    recommended contacts (no duplicates by role/title).
    """
    if not people:
        return profile

    updates: dict[str, Any] = {}
    if not profile.top_job_titles:
        titles = titles_from_people(people)
        if titles:
            updates["top_job_titles"] = titles

    merged = list(profile.recommended_contacts)
    seen = {(r.role, r.title_guess) for r in merged}
    for p in people[:MAX_PEOPLE_RECOMMENDATIONS]:
        title = str(p.get("title") or "").strip() or "Executive"
        rec = RecommendedContact(role=role_of(title, _department(p)), title_guess=title)
        key = (rec.role, rec.title_guess)
        if key in seen:
            continue
        seen.add(key)
        merged.append(rec)
    updates["recommended_contacts"] = merged[:MAX_RECOMMENDED_CONTACTS]

    return profile.model_copy(update=updates)
