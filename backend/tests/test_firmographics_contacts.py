import pytest

from crmsync.domain.errors import InputValidationError, ProviderError, RecordNotFound
from crmsync.models import EntityType
from crmsync.service_layer.unit_of_work import SqlAlchemyUnitOfWork
from crmsync.service_layer.use_cases.enrich_contact import match_params, run_contact_enrichment
from crmsync.service_layer.use_cases.firmographics import company_domain, sync_firmographics, sync_firmographics_by_domain
from crmsync.service_layer.use_cases.queries import enrichment_stats, enrichment_versions, recommended_contacts

ORG = {
    "id": "org-9",
    "name": "Borealis Foods",
    "primary_domain": "borealis.com",
    "website_url": "https://borealis.com",
    "industry": "food production",
    "estimated_num_employees": 1200,
}

PERSON = {
    "id": "p-1",
    "email": "ana@borealis.com",
    "title": "Plant Manager",
    "seniority": "manager",
    "departments": ["operations"],
    "organization_id": "org-9",
    "linkedin_url": "https://linkedin.com/in/ana",
}


def test_company_domain_prefers_website():
    assert company_domain({"websiteUrl": "https://www.borealis.com/about", "domain": "old.com"}) == "borealis.com"
    assert company_domain({"domain": "Borealis.com"}) == "borealis.com"
    assert company_domain({}) is None


async def test_sync_firmographics_merges_and_archives(deps, seed, load, async_session_maker, apollo):
    rec_id = await seed("t1", "co", {"name": "Borealis", "websiteUrl": "https://borealis.com/"})
    apollo.org = dict(ORG)

    res = await sync_firmographics(deps, "t1", "co")

    assert res["ok"] is True
    assert "industryLabel" in res["updatedFields"]
    assert "name" not in res["updatedFields"]
    rec = await load("t1", "co")
    assert rec.data["name"] == "Borealis"
    assert rec.data["industryLabel"] == "food production"
    assert rec.provenance["employeeCount"] == "apollo"
    assert rec.data["integrations"]["apollo"]["signalStrength"] == "verified"

    async with SqlAlchemyUnitOfWork(async_session_maker) as uow:
        archives = await uow.records.list_raw_archives(rec_id, provider="apollo")
    assert [a.snapshot_id for a in archives] == [res["snapshotId"]]
    assert archives[0].payload["organization"]["id"] == "org-9"


async def test_sync_firmographics_reports_provider_trouble(deps, seed, apollo):
    await seed("t1", "co", {"websiteUrl": "https://borealis.com/"})
    await seed("t1", "nodomain", {"name": "Nowhere"})

    apollo.error = ProviderError("apollo 503")
    assert await sync_firmographics(deps, "t1", "co") == {"ok": False, "error": "apollo 503"}

    apollo.error = None
    apollo.org = None
    assert (await sync_firmographics(deps, "t1", "co"))["ok"] is False

    assert (await sync_firmographics(deps, "t1", "nodomain"))["error"] == "Company has no website or domain"

    with pytest.raises(RecordNotFound):
        await sync_firmographics(deps, "t1", "ghost")


async def test_sync_by_domain_finds_company_by_website(deps, seed, apollo, load):
    await seed("t1", "co", {"websiteUrl": "https://borealis.com/"})
    apollo.org = dict(ORG)

    res = await sync_firmographics_by_domain(deps, "t1", "www.Borealis.com")

    assert res["ok"] is True
    assert res["companyId"] == "co"
    assert (await load("t1", "co")).data["domain"] == "borealis.com"

    missing = await sync_firmographics_by_domain(deps, "t1", "unknown.io")
    assert missing == {"ok": False, "error": "Company not found for domain"}

    with pytest.raises(InputValidationError):
        await sync_firmographics_by_domain(deps, "t1", "")


def test_match_params_prefers_email_then_names():
    company = {"name": "Borealis Foods", "websiteUrl": "https://borealis.com/"}
    assert match_params({"email": " ana@borealis.com ", "firstName": "Ana"}, company) == {
        "email": "ana@borealis.com",
        "first_name": "Ana",
        "organization_name": "Borealis Foods",
        "domain": "borealis.com",
    }
    assert match_params({"fullName": "Ana Silva", "firstName": "Ana"}, None) == {"name": "Ana Silva"}


async def test_contact_enrichment_gates_and_archives(deps, seed, load, apollo):
    await seed("t1", "co", {"name": "Borealis Foods", "websiteUrl": "https://borealis.com/"})
    await seed(
        "t1",
        "ct",
        {"firstName": "Ana", "lastName": "Silva", "companyId": "co", "title": "Ops Lead"},
        entity_type=EntityType.contact,
    )
    apollo.person = dict(PERSON)

    res = await run_contact_enrichment(deps, "t1", "ct")

    assert res["ok"] is True
    assert "email" in res["updatedFields"]
    assert "title" not in res["appliedFields"]

    match_call = [c for c in apollo.calls if c[0] == "match"][0][1]
    assert match_call["domain"] == "borealis.com"
    assert match_call["first_name"] == "Ana"

    rec = await load("t1", "ct", EntityType.contact)
    assert rec.data["title"] == "Ops Lead"
    assert rec.data["email"] == "ana@borealis.com"
    assert rec.provenance["email"] == "apollo"
    assert rec.data["integrations"]["apollo"]["organizationId"] == "org-9"
    assert rec.data["integrations"]["apollo"]["source"] == "apollo.people/match"


async def test_contact_without_identity_or_match(deps, seed, apollo):
    await seed("t1", "anon", {"phone": "555"}, entity_type=EntityType.contact)
    await seed("t1", "ct", {"email": "x@y.com"}, entity_type=EntityType.contact)

    assert (await run_contact_enrichment(deps, "t1", "anon"))["ok"] is False
    apollo.person = None
    assert await run_contact_enrichment(deps, "t1", "ct") == {"ok": False, "error": "No match returned from provider"}


async def test_recommended_contacts_filters_titles(deps, seed, apollo):
    await seed("t1", "co", {"websiteUrl": "https://borealis.com/"})
    apollo.people = [{"title": "Warehouse Manager"}, {"title": "CFO"}]

    res = await recommended_contacts(deps, "t1", "co", {"titles": ["warehouse"], "departments": "operations"})

    assert res == {"ok": True, "contacts": [{"title": "Warehouse Manager"}]}
    people_call = [c for c in apollo.calls if c[0] == "people"][0][1]
    assert people_call["domain"] == "borealis.com"
    assert people_call["departments"] == ("operations",)


async def test_recommended_contacts_without_key_is_empty(deps, seed, credentials):
    await seed("t1", "co", {"websiteUrl": "https://borealis.com/"})
    credentials.keys.pop("apollo")
    assert await recommended_contacts(deps, "t1", "co") == {"ok": True, "contacts": []}


async def test_versions_and_stats_for_unenriched_tenant(deps, seed):
    await seed("t1", "co", {"name": "Borealis"})

    assert await enrichment_versions(deps, "t1", "co") == []
    stats = await enrichment_stats(deps, "t1")
    assert stats == {"companies": 1, "enriched": 0, "updatedLast7Days": 0, "avgLeadScore": 0.0}
