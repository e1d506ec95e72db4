from datetime import datetime, timedelta, timezone

from crmsync.domain.profile import AdvisoryPayload, CompanyProfile
from crmsync.domain.scoring import compute_lead_score
from crmsync.domain.snapshots import ensure_aware_utc, snapshot_id
from crmsync.domain.text import FALLBACK_SUMMARY_CHARS, fallback_summary, sanitize_summary

from fakes import profile_reply


def test_profile_accepts_camel_case_and_coerces_sloppy_lists():
    p = CompanyProfile.model_validate(
        {
            "businessSummary": None,
            "topJobTitles": "Picker",
            "hiringTrends": ["a", None, "  ", "b"],
            "recommendedContacts": [{"role": "HR", "titleGuess": None}, "junk"],
            "inferredOrgStructure": {"warehouse": True},
            "somethingElse": 1,
        }
    )
    assert p.business_summary == ""
    assert p.top_job_titles == ["Picker"]
    assert p.hiring_trends == ["a", "b"]
    assert [c.title_guess for c in p.recommended_contacts] == [""]
    assert p.inferred_org_structure.warehouse is True
    assert p.to_doc()["inferredOrgStructure"]["ops"] is False


def test_lead_score_signals_are_additive():
    p = CompanyProfile.model_validate(profile_reply())
    score = compute_lead_score(p)

    assert score.score == 35
    assert score.signals == ("High hiring velocity", "Warehouse ops", "Operations leadership")


def test_lead_score_all_signals_and_clamp():
    p = CompanyProfile.model_validate(
        profile_reply(redFlags=["Layoffs"], suggestedTags=["uses temp agency"])
    )
    score = compute_lead_score(p)

    assert score.score == 75
    assert "Red flags present" in score.signals
    assert "Competitors using temp staff" in score.signals
    assert 0 <= score.score <= 100


def test_empty_profile_scores_zero():
    score = compute_lead_score(CompanyProfile())
    assert (score.score, score.signals) == (0, ())


def test_sanitize_summary_strips_scrape_noise():
    raw = "Acme moves freight... across Ohio. Conserving Resources. Improving Life. | 12,345 followers on LinkedIn"
    assert sanitize_summary(raw) == "Acme moves freight across Ohio."


def test_fallback_summary_truncates_or_uses_name():
    assert fallback_summary("Acme", ["x" * 1000]) == "x" * FALLBACK_SUMMARY_CHARS
    assert fallback_summary("Acme", ["", ""]) == "Acme company overview unavailable."
    assert fallback_summary(None, []) == "This company company overview unavailable."


def test_advisory_payload_defaults_and_caps_suggestions():
    p = AdvisoryPayload.model_validate(
        {"summary": "  ", "suggestions": [{"label": str(i), "action": "x"} for i in range(5)]}
    )
    assert p.summary == "No summary available."
    assert len(p.suggestions) == 3


def test_snapshot_id_is_second_resolution_utc():
    at = datetime(2025, 1, 2, 3, 4, 5, 999000, tzinfo=timezone(timedelta(hours=2)))
    assert snapshot_id(at) == "20250102010405"
    assert snapshot_id(datetime(2025, 1, 2, 3, 4, 5)) == "20250102030405"


def test_ensure_aware_utc_treats_naive_as_utc():
    naive = datetime(2025, 1, 1, 12, 0)
    assert ensure_aware_utc(naive).tzinfo == timezone.utc
    assert ensure_aware_utc(naive).hour == 12
