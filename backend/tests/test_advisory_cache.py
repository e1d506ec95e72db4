import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from crmsync.domain.errors import InputValidationError, ProviderAuthMissing
from crmsync.domain.profile import AdvisoryPayload
from crmsync.models import EntityType
from crmsync.service_layer.advisory_cache import AdvisoryCache, AdvisoryRequest
from crmsync.service_layer.use_cases.advisory import AdvisoryService, LlmAdvisoryGenerator

from fakes import FakeLLM, StaticCredentials

T0 = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> None:
        self.now = self.now + timedelta(**kw)


class CountingGenerator:
    def __init__(self, delay_s: float = 0.0, fail: Exception | None = None) -> None:
        self.calls = 0
        self.delay_s = delay_s
        self.fail = fail

    async def generate(self, req: AdvisoryRequest) -> AdvisoryPayload:
        self.calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.fail is not None:
            raise self.fail
        return AdvisoryPayload(
            summary=f"advice #{self.calls} for {req.stage_key}",
            suggestions=[{"label": "Call", "action": "Book a site visit"}],
        )


@pytest.fixture
def clock():
    return Clock(T0)


@pytest.fixture
def make_service(async_session_maker, clock):
    def _make(generator):
        return AdvisoryService(AdvisoryCache(async_session_maker, clock=clock), generator)

    return _make


async def test_first_call_generates_and_second_identical_call_is_deduped(make_service, clock):
    gen = CountingGenerator()
    svc = make_service(gen)

    first = await svc.generate_advisory("tenantX", "dealY", "discovery", {"amount": 5000})
    clock.advance(minutes=3)
    second = await svc.generate_advisory("tenantX", "dealY", "discovery", {"amount": 5000})

    assert first["ok"] is True and first["cacheHit"] is False
    assert second["cacheHit"] is True
    assert second["deduped"] is True
    assert second["payload"] == first["payload"]
    assert gen.calls == 1


async def test_same_stage_different_params_hits_recent_window(make_service, clock):
    gen = CountingGenerator()
    svc = make_service(gen)

    await svc.generate_advisory("t", "d", "proposal", {"amount": 1})
    clock.advance(minutes=30)
    res = await svc.generate_advisory("t", "d", "proposal", {"amount": 2})

    assert res["cacheHit"] is True
    assert res.get("recent") is True
    assert "deduped" not in res
    assert gen.calls == 1


async def test_other_stage_of_same_entity_is_rate_limited(make_service, clock):
    gen = CountingGenerator()
    svc = make_service(gen)

    first = await svc.generate_advisory("t", "d", "discovery", {})
    clock.advance(minutes=20)
    res = await svc.generate_advisory("t", "d", "negotiation", {})

    assert res["cacheHit"] is True
    assert res.get("rateLimited") is True
    assert "recent" not in res
    assert res["payload"] == first["payload"]
    assert gen.calls == 1


async def test_expired_windows_fall_through_to_generation(make_service, clock):
    gen = CountingGenerator()
    svc = make_service(gen)

    await svc.generate_advisory("t", "d", "discovery", {})
    clock.advance(hours=1, seconds=1)
    other_stage = await svc.generate_advisory("t", "d", "negotiation", {})
    assert other_stage["cacheHit"] is False

    clock.advance(hours=7)
    again = await svc.generate_advisory("t", "d", "discovery", {})
    assert again["cacheHit"] is False
    assert gen.calls == 3


async def test_concurrent_identical_requests_collapse_to_one_generation(make_service):
    gen = CountingGenerator(delay_s=0.05)
    svc = make_service(gen)

    a, b = await asyncio.gather(
        svc.generate_advisory("tenantX", "dealY", "discovery", {"x": 1}),
        svc.generate_advisory("tenantX", "dealY", "discovery", {"x": 1}),
    )

    assert gen.calls == 1
    assert a["payload"] == b["payload"]
    assert sorted([a["cacheHit"], b["cacheHit"]]) == [False, True]


async def test_generation_failure_is_not_cached(make_service):
    gen = CountingGenerator(fail=ProviderAuthMissing("openai", "t"))
    svc = make_service(gen)

    res = await svc.generate_advisory("t", "d", "discovery", {})
    assert res["ok"] is False
    assert "openai" in res["error"]

    gen.fail = None
    res = await svc.generate_advisory("t", "d", "discovery", {})
    assert res["ok"] is True and res["cacheHit"] is False
    assert gen.calls == 2


async def test_required_arguments(make_service):
    svc = make_service(CountingGenerator())
    with pytest.raises(InputValidationError):
        await svc.generate_advisory("", "d", "discovery", {})


def test_fingerprint_ignores_none_params_and_stage_case():
    a = AdvisoryRequest("t", "d", "Discovery", {"a": 1, "b": None})
    b = AdvisoryRequest("t", "d", "discovery ", {"a": 1})
    c = AdvisoryRequest("t", "d", "discovery", {"a": 2})
    assert a.fingerprint() == b.fingerprint()
    assert a.fingerprint() != c.fingerprint()
    assert a.stage_scope == "t/d/discovery"
    assert a.entity_scope == "t/d"


async def test_llm_generator_uses_record_snapshot(async_session_maker, seed):
    await seed("t", "c1", {"name": "Acme"})
    llm = FakeLLM(structured=['{"summary": "Push the pilot.", "suggestions": [{"label": "Pilot", "action": "Offer 2 weeks"}]}'])
    gen = LlmAdvisoryGenerator(llm, StaticCredentials({"openai": "k"}), async_session_maker)

    payload = await gen.generate(AdvisoryRequest("t", "c1", "discovery", {"entityType": EntityType.company.value}))

    assert payload.summary == "Push the pilot."
    assert payload.suggestions[0].label == "Pilot"
    assert '"name": "Acme"' in llm.structured_calls[0]["user_prompt"]


async def test_llm_generator_without_key_raises_auth_missing(async_session_maker):
    gen = LlmAdvisoryGenerator(FakeLLM(), StaticCredentials({}), async_session_maker)
    with pytest.raises(ProviderAuthMissing):
        await gen.generate(AdvisoryRequest("t", "d", "discovery", {}))
