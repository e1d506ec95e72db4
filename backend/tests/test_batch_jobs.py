from datetime import timedelta

import pytest
from sqlalchemy import select

from crmsync.domain.errors import InputValidationError
from crmsync.domain.snapshots import utcnow
from crmsync.jobs import enrichment as jobs
from crmsync.jobs.enrichment import per_tenant_cap, run_tenant_batch, run_weekly_enrichment
from crmsync.models import CrmRecord, JobRun, JobRunStatus


@pytest.mark.parametrize("cap, expected", [(300, 50), (100, 25), (20, 10), (0, 10)])
def test_per_tenant_cap(cap, expected):
    assert per_tenant_cap(cap) == expected


@pytest.fixture
def calls(monkeypatch):
    """Replace the pipeline with a recorder; company ids starting with 'bad' fail."""
    seen: list[tuple[str, str, str, bool]] = []

    async def fake_run(deps, tenant_id, entity_id, *, mode="full", force=False):
        seen.append((tenant_id, entity_id, mode, force))
        if entity_id.startswith("bad"):
            raise RuntimeError("provider exploded")

    monkeypatch.setattr(jobs, "run_enrichment", fake_run)
    return seen


async def _mark_enriched(session_maker, tenant_id, entity_id, days_ago):
    async with session_maker() as session:
        rec = (
            await session.execute(
                select(CrmRecord).where(CrmRecord.tenant_id == tenant_id, CrmRecord.entity_id == entity_id)
            )
        ).scalars().one()
        rec.last_enriched_at = utcnow() - timedelta(days=days_ago)
        await session.commit()


async def test_weekly_runs_stale_first_then_unenriched(deps, seed, async_session_maker, calls, sleeper):
    for cid in ("fresh", "stale_old", "stale_older", "new1", "new2"):
        await seed("t1", cid, {"name": cid})
    await _mark_enriched(async_session_maker, "t1", "fresh", 1)
    await _mark_enriched(async_session_maker, "t1", "stale_old", 10)
    await _mark_enriched(async_session_maker, "t1", "stale_older", 30)

    summary = await run_weekly_enrichment(deps, weekly_cap=100, delay_s=0.25)

    assert [c[1] for c in calls] == ["stale_older", "stale_old", "new1", "new2"]
    assert all(c[2] == "full" for c in calls)
    assert summary == {"processed": 4, "failed": 0, "remaining": 96}
    assert sleeper.calls == [0.25] * 4

    async with async_session_maker() as session:
        run = (await session.execute(select(JobRun))).scalars().one()
    assert run.job_name == "enrichment_weekly"
    assert run.status == JobRunStatus.success


async def test_weekly_respects_global_and_per_tenant_caps(deps, seed, calls):
    for t in ("ta", "tb"):
        for i in range(15):
            await seed(t, f"c{i:02d}", {"name": f"{t}-{i}"})

    summary = await run_weekly_enrichment(deps, weekly_cap=12, delay_s=0)

    per_tenant = {t: sum(1 for c in calls if c[0] == t) for t in ("ta", "tb")}
    assert per_tenant == {"ta": 10, "tb": 2}
    assert summary["processed"] == 12
    assert summary["remaining"] == 0


async def test_weekly_failures_do_not_consume_budget_or_delay(deps, seed, calls, sleeper):
    await seed("t1", "bad1", {"name": "x"})
    await seed("t1", "good1", {"name": "y"})

    summary = await run_weekly_enrichment(deps, weekly_cap=40, delay_s=0.25)

    assert summary == {"processed": 1, "failed": 1, "remaining": 39}
    assert sleeper.calls == [0.25]


async def test_tenant_batch_prefers_active_deals(deps, seed, calls, sleeper):
    await seed("t1", "quiet", {"name": "q"})
    await seed("t1", "jobs", {"name": "j", "hasOpenJobOrders": True})
    await seed("t1", "deal", {"name": "d", "hasActiveDeals": True})
    await seed("t2", "elsewhere", {"name": "e", "hasActiveDeals": True})

    res = await run_tenant_batch(deps, "t1", limit=10)

    assert res == {"queued": 1}
    assert calls == [("t1", "deal", "metadata-only", False)]
    assert sleeper.calls == [0.5]


async def test_tenant_batch_falls_back_to_recent_companies(deps, seed, calls):
    await seed("t1", "a", {"name": "a"})
    await seed("t1", "bad", {"name": "b"})

    res = await run_tenant_batch(deps, "t1", limit=5, mode="full", force=True)

    assert res == {"queued": 1}
    assert {c[1] for c in calls} == {"a", "bad"}
    assert all(c[2] == "full" and c[3] is True for c in calls)


async def test_tenant_batch_validates_input(deps):
    with pytest.raises(InputValidationError):
        await run_tenant_batch(deps, "")
    with pytest.raises(InputValidationError):
        await run_tenant_batch(deps, "t1", mode="everything")
