import pytest

from crmsync.adapters.clients.web_text import content_hash
from crmsync.domain.errors import ExtractionParseError, ProviderError
from crmsync.service_layer.aggregator import AggregatedSources, SourceDescriptor, SourceText, aggregate_sources
from crmsync.service_layer.extraction import FALLBACK_MODEL, StructuredExtractor, parse_profile

from fakes import FakeFetcher, FakeLLM, profile_reply

DESCRIPTORS = [
    SourceDescriptor("website", "https://acme.com/"),
    SourceDescriptor("social", "https://linkedin.com/company/acme"),
    SourceDescriptor("jobs", None),
]


async def test_one_failing_source_does_not_fail_the_others():
    fetcher = FakeFetcher(
        {
            "https://acme.com/": "  Acme   moves freight  ",
            "https://linkedin.com/company/acme": RuntimeError("boom"),
        }
    )
    agg = await aggregate_sources(fetcher, DESCRIPTORS, max_chars=100)

    assert set(agg.sources) == {"website", "social", "jobs"}
    assert agg.text("website") == "Acme moves freight"
    assert agg.sources["social"].error == "RuntimeError"
    assert agg.sources["jobs"].url is None
    assert agg.any_signal is True
    assert agg.hashes() == {"website": content_hash("Acme moves freight")}
    # jobs had no url, so it was never fetched
    assert len(fetcher.calls) == 2


async def test_all_empty_sources_mean_no_signal():
    fetcher = FakeFetcher({"https://acme.com/": "   "})
    agg = await aggregate_sources(fetcher, DESCRIPTORS, max_chars=100)

    assert agg.any_signal is False
    assert agg.sources["website"].error == "empty"
    assert agg.hashes() == {}


async def test_text_is_bounded():
    fetcher = FakeFetcher({"https://acme.com/": "x" * 500})
    agg = await aggregate_sources(fetcher, DESCRIPTORS[:1], max_chars=50)
    assert len(agg.text("website")) == 50


def test_unchanged_since_compares_non_empty_hashes():
    agg = AggregatedSources(
        sources={
            "website": SourceText("website", "a", content_hash("a")),
            "social": SourceText("social", "b", content_hash("b")),
            "jobs": SourceText("jobs"),
        }
    )
    prev = {"website": content_hash("a"), "social": content_hash("old"), "jobs": ""}
    assert agg.unchanged_since(prev) == ["website"]
    assert agg.unchanged_since(None) == []


def _sources(text="Acme moves freight across Ohio."):
    return AggregatedSources(sources={"website": SourceText("website", text, content_hash(text))})


def test_parse_profile_errors():
    with pytest.raises(ExtractionParseError):
        parse_profile("{not json")
    with pytest.raises(ExtractionParseError):
        parse_profile("[1, 2]")
    with pytest.raises(ExtractionParseError):
        parse_profile('{"inferredOrgStructure": "nope"}')


async def test_malformed_first_reply_is_retried_once():
    llm = FakeLLM(structured=["{oops", profile_reply()])
    result = await StructuredExtractor(llm).extract(company_name="Acme", sources=_sources(), api_key="k")

    assert result.attempts == 2
    assert result.is_fallback is False
    assert result.model == "fake-model"
    assert result.profile.business_summary == "Acme runs regional distribution centers in Ohio."
    assert len(llm.structured_calls) == 2
    # identical input on the retry
    assert llm.structured_calls[0]["user_prompt"] == llm.structured_calls[1]["user_prompt"]


async def test_two_failures_fall_back_without_raising():
    llm = FakeLLM(structured=[ProviderError("rate limited"), "not json"])
    result = await StructuredExtractor(llm).extract(company_name="Acme", sources=_sources(), api_key="k")

    assert result.is_fallback is True
    assert result.model == FALLBACK_MODEL
    assert result.usage is None
    assert result.profile.business_summary == "Acme moves freight across Ohio."
    assert result.profile.suggested_tags == []


async def test_blank_summary_is_replaced_and_sanitized():
    llm = FakeLLM(structured=[profile_reply(businessSummary="")])
    text = "Acme moves freight... | 900 followers on LinkedIn"
    result = await StructuredExtractor(llm).extract(company_name="Acme", sources=_sources(text), api_key="k")

    assert result.is_fallback is False
    assert result.profile.business_summary == "Acme moves freight"


async def test_qa_note_returns_text_and_raises_on_provider_error():
    llm = FakeLLM(text=["  Looks good.  "])
    extractor = StructuredExtractor(llm)
    profile = parse_profile('{"businessSummary": "x"}')

    assert await extractor.qa_note(profile=profile, sources=_sources(), api_key="k") == "Looks good."

    llm.text = [ProviderError("down")]
    with pytest.raises(ProviderError):
        await extractor.qa_note(profile=profile, sources=_sources(), api_key="k")
