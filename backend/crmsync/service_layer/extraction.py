# crmsync/service_layer/extraction.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from pydantic import ValidationError

from ..adapters.llm import LanguageModel
from ..config import settings
from ..domain.errors import ExtractionParseError, ProviderError
from ..domain.profile import CompanyProfile
from ..domain.text import fallback_summary, sanitize_summary
from .aggregator import AggregatedSources

log = logging.getLogger(__name__)

EXTRACTION_ATTEMPTS = 2
FALLBACK_MODEL = "fallback"
QA_SOURCE_CHARS = 2000
QA_MAX_COMPLETION_TOKENS = 200

SYSTEM_PROMPT = (
    "You research companies for a B2B staffing sales team. "
    "Answer with a single JSON object and nothing else."
)

_FIELDS_HINT = (
    "Keys: businessSummary (string), topJobTitles (string[]), hiringTrends (string[]), "
    "competitorCompanies (string[]), likelyPainPoints (string[]), "
    "recommendedContacts ({role, titleGuess}[]), redFlags (string[]), suggestedTags (string[]), "
    "suggestedApproach (string), generatedScripts ({coldEmail, coldCallOpening, voicemail}), "
    "inferredOrgStructure ({warehouse, ops, hr, leadership} booleans)."
)


def build_extraction_prompt(company_name: str, sources: AggregatedSources) -> str:
    return "\n".join(
        [
            f"Company: {company_name or 'unknown'}",
            _FIELDS_HINT,
            "businessSummary is two or three plain sentences about what the company does and where.",
            "Job titles and hiring trends come only from the job listings text. Leave lists empty when unsure.",
            "",
            "[WEBSITE]",
            sources.text("website"),
            "[SOCIAL]",
            sources.text("social"),
            "[JOBS]",
            sources.text("jobs"),
        ]
    )


def parse_profile(text: str) -> CompanyProfile:
    try:
        raw = json.loads(text or "")
    except json.JSONDecodeError as e:
        raise ExtractionParseError(f"not json: {e.msg}") from e
    if not isinstance(raw, dict):
        raise ExtractionParseError(f"expected object, got {type(raw).__name__}")
    try:
        return CompanyProfile.model_validate(raw)
    except ValidationError as e:
        raise ExtractionParseError(f"schema mismatch: {e.error_count()} errors") from e


@dataclass(frozen=True)
class ExtractionResult:
    profile: CompanyProfile
    model: str
    usage: dict[str, int] | None
    attempts: int

    @property
    def is_fallback(self) -> bool:
        return self.model == FALLBACK_MODEL


class StructuredExtractor:
    def __init__(self, llm: LanguageModel, *, model: str | None = None, qa_model: str | None = None) -> None:
        self.llm = llm
        self.model = model or settings.OPENAI_MODEL
        self.qa_model = qa_model or settings.OPENAI_QA_MODEL

    def fallback(self, company_name: str, sources: AggregatedSources) -> ExtractionResult:
        summary = fallback_summary(company_name, list(sources.texts().values()))
        profile = CompanyProfile(business_summary=sanitize_summary(summary))
        return ExtractionResult(profile=profile, model=FALLBACK_MODEL, usage=None, attempts=EXTRACTION_ATTEMPTS)

    async def extract(self, *, company_name: str, sources: AggregatedSources, api_key: str) -> ExtractionResult:
        """
        Two attempts with identical input; after that a deterministic fallback.
        Never raises for provider or parse failures.
        """
        prompt = build_extraction_prompt(company_name, sources)

        for attempt in range(1, EXTRACTION_ATTEMPTS + 1):
            try:
                completion = await self.llm.generate_structured(
                    api_key=api_key,
                    system_prompt=SYSTEM_PROMPT,
                    user_prompt=prompt,
                    model=self.model,
                    max_completion_tokens=settings.EXTRACTION_MAX_COMPLETION_TOKENS,
                )
                profile = parse_profile(completion.text)
            except (ProviderError, ExtractionParseError) as e:
                log.warning("extraction attempt %d/%d failed: %s", attempt, EXTRACTION_ATTEMPTS, e)
                continue

            summary = profile.business_summary
            if not summary.strip():
                summary = fallback_summary(company_name, list(sources.texts().values()))
            profile = profile.model_copy(update={"business_summary": sanitize_summary(summary)})
            return ExtractionResult(profile=profile, model=completion.model, usage=completion.usage, attempts=attempt)

        log.warning("extraction exhausted for company=%r; using fallback", company_name)
        return self.fallback(company_name, sources)

    async def qa_note(self, *, profile: CompanyProfile, sources: AggregatedSources, api_key: str) -> str | None:
        """One-sentence sanity check. Raises on provider errors; callers run it best-effort."""
        if not settings.ENRICHMENT_QA_ENABLED:
            return None
        prompt = "\n".join(
            [
                "Check this extracted profile against the source snippets for contradictions or invented facts.",
                "Reply with one short sentence: 'Looks good.' or a brief list of concerns.",
                "",
                "[PROFILE]",
                json.dumps(profile.to_doc()),
                "[SOURCES]",
                f"Website: {sources.text('website')[:QA_SOURCE_CHARS]}",
                f"Social: {sources.text('social')[:QA_SOURCE_CHARS]}",
                f"Jobs: {sources.text('jobs')[:QA_SOURCE_CHARS]}",
            ]
        )
        completion = await self.llm.generate_text(
            api_key=api_key,
            system_prompt="You are a fast QA reviewer.",
            user_prompt=prompt,
            model=self.qa_model,
            max_completion_tokens=QA_MAX_COMPLETION_TOKENS,
        )
        note = (completion.text or "").strip()
        return note or None
