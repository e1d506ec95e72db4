from crmsync.domain.firmographics import (
    MAX_RECOMMENDED_CONTACTS,
    augment_profile_with_people,
    extraction_candidates,
    organization_candidates,
    organization_summary,
    person_candidates,
    role_of,
)
from crmsync.domain.profile import CompanyProfile, RecommendedContact
from crmsync.domain.tree import UNSET

ORG = {
    "id": "org-1",
    "name": "Acme Logistics",
    "primary_domain": "acme.com",
    "website_url": "http://www.acme.com",
    "primary_phone": {"sanitized_number": "+13135550100"},
    "estimated_num_employees": 420,
    "industry": "logistics & supply chain",
    "keywords": ["Freight", "freight", "3PL"],
    "annual_revenue": None,
    "linkedin_url": "linkedin.com/company/acme",
    "org_chart_root_people_ids": [],
    "suborganizations": [{"id": "s1", "name": "Acme East", "website_url": None}],
}


def test_organization_candidates_map_provider_fields():
    c = organization_candidates(ORG)

    assert c["name"] == "Acme Logistics"
    assert c["domain"] == "acme.com"
    assert c["websiteUrl"] == "http://www.acme.com/"
    assert c["phone"] == "+13135550100"
    assert c["employeeCount"] == 420
    assert c["social.linkedin"] == "https://linkedin.com/company/acme"
    assert c["suborganizations.top"] == [{"id": "s1", "name": "Acme East", "websiteUrl": None}]


def test_provider_nulls_become_unset_not_clears():
    c = organization_candidates(ORG)

    assert c["revenue.amount"] is UNSET
    assert c["foundedYear"] is UNSET
    assert c["techStack.names"] is UNSET
    # always a definite bool
    assert c["orgChart.hasRootPeople"] is False


def test_organization_summary_drops_nones():
    s = organization_summary(ORG)
    assert s["id"] == "org-1"
    assert s["domain"] == "acme.com"
    assert "foundedYear" not in s


def test_person_candidates():
    c = person_candidates(
        {
            "email": "jo@acme.com",
            "title": "Warehouse Manager",
            "seniority": "manager",
            "departments": ["operations"],
            "phone_numbers": [{"raw_number": "313-555-0101"}],
            "organization_id": "org-1",
            "organization": {"name": "Acme Logistics"},
        }
    )
    assert c["email"] == "jo@acme.com"
    assert c["headline"] == "Warehouse Manager"
    assert c["phone"] == "313-555-0101"
    assert c["employment.organizationId"] == "org-1"
    assert c["photoUrl"] is UNSET


def test_extraction_candidates_skip_empty_values():
    c = extraction_candidates(CompanyProfile(business_summary="", suggested_tags=["x"]))
    assert c["description"] is UNSET
    assert c["tags"] == ["x"]
    assert c["topJobTitles"] is UNSET


def test_role_of():
    assert role_of("People Partner", None) == "HR"
    assert role_of("Director", "operations") == "Operations"
    assert role_of("Warehouse Lead", None) == "Warehouse"
    assert role_of("CEO", None) == "Leadership"


def test_augment_fills_titles_and_dedupes_contacts():
    profile = CompanyProfile(recommended_contacts=[RecommendedContact(role="Operations", title_guess="VP Operations")])
    people = [
        {"title": "VP Operations", "departments": ["operations"]},
        {"title": "HR Manager", "department": "hr"},
        {"title": None},
        {"title": "HR Manager", "department": "hr"},
    ]

    out = augment_profile_with_people(profile, people)

    assert out.top_job_titles == ["VP Operations", "HR Manager"]
    assert [(r.role, r.title_guess) for r in out.recommended_contacts] == [
        ("Operations", "VP Operations"),
        ("HR", "HR Manager"),
        ("Leadership", "Executive"),
    ]
    # original untouched
    assert profile.top_job_titles == []


def test_augment_caps_recommendations():
    existing = [RecommendedContact(role="Leadership", title_guess=f"T{i}") for i in range(10)]
    people = [{"title": f"P{i}"} for i in range(8)]
    out = augment_profile_with_people(CompanyProfile(recommended_contacts=existing, top_job_titles=["Kept"]), people)

    assert len(out.recommended_contacts) == MAX_RECOMMENDED_CONTACTS
    assert out.top_job_titles == ["Kept"]
