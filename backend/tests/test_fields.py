import pytest

from crmsync.domain.fields import (
    COMPANY_FIELD_IDS,
    CONTACT_FIELD_IDS,
    TAG_LIST_LIMIT,
    extract_domain,
    field,
    sanitize_url,
)
from crmsync.domain.tree import UNSET


def test_sanitize_url_adds_scheme_and_lowercases_host():
    assert sanitize_url("Acme.com/About") == "https://acme.com/About"
    assert sanitize_url("http://www.ACME.com") == "http://www.acme.com/"
    assert sanitize_url("   ") is None
    assert sanitize_url(None) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://www.acme.com/careers", "acme.com"),
        ("acme.com", "acme.com"),
        ("http://shop.acme.co.uk", "shop.acme.co.uk"),
        ("", None),
    ],
)
def test_extract_domain(raw, expected):
    assert extract_domain(raw) == expected


def test_tag_lists_are_case_folded_deduped_and_capped():
    spec = field("tags")
    raw = [f"Tag{i % 250}" for i in range(600)] + ["", None, "  "]
    out = spec.normalize(raw)

    assert len(out) == TAG_LIST_LIMIT
    assert len(set(out)) == len(out)
    assert all(t == t.lower() for t in out)


def test_entity_lists_are_projected_and_capped():
    spec = field("suborganizations.top")
    raw = [{"id": str(i), "name": f"Sub {i}", "websiteUrl": None, "secret": "x"} for i in range(40)]
    out = spec.normalize(raw)

    assert len(out) == 25
    assert set(out[0]) == {"id", "name", "websiteUrl"}


def test_normalize_keeps_none_and_rejects_garbage():
    assert field("phone").normalize(None) is None
    assert field("tags").normalize("not-a-list") is UNSET
    assert field("industries").normalize(("a", "b")) == ["a", "b"]


def test_unknown_field_is_an_error():
    with pytest.raises(KeyError):
        field("nope.nothing")


def test_catalog_covers_company_and_contact_fields():
    assert {"name", "domain", "websiteUrl", "tags", "description"} <= COMPANY_FIELD_IDS
    assert {"email", "title", "seniority", "departments"} <= CONTACT_FIELD_IDS
