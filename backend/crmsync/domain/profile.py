from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    # Model output and stored documents use camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_doc(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def _str_list(v: Any) -> list[str]:
    if v is None:
        return []
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, (list, tuple)):
        return []
    return [str(x).strip() for x in v if x is not None and str(x).strip()]


class RecommendedContact(_CamelModel):
    role: str = ""
    title_guess: str = ""

    @field_validator("role", "title_guess", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()


class GeneratedScripts(_CamelModel):
    cold_email: str = ""
    cold_call_opening: str = ""
    voicemail: str = ""


class InferredOrgStructure(_CamelModel):
    warehouse: bool = False
    ops: bool = False
    hr: bool = False
    leadership: bool = False


class CompanyProfile(_CamelModel):
    """
    Structured output of one extraction run. Every field has a default so a
    partially filled model response still validates.
    """
    business_summary: str = ""
    top_job_titles: list[str] = Field(default_factory=list)
    hiring_trends: list[str] = Field(default_factory=list)
    competitor_companies: list[str] = Field(default_factory=list)
    likely_pain_points: list[str] = Field(default_factory=list)
    recommended_contacts: list[RecommendedContact] = Field(default_factory=list)
    red_flags: list[str] = Field(default_factory=list)
    suggested_tags: list[str] = Field(default_factory=list)
    suggested_approach: str = ""
    generated_scripts: GeneratedScripts = Field(default_factory=GeneratedScripts)
    inferred_org_structure: InferredOrgStructure = Field(default_factory=InferredOrgStructure)

    @field_validator(
        "top_job_titles",
        "hiring_trends",
        "competitor_companies",
        "likely_pain_points",
        "red_flags",
        "suggested_tags",
        mode="before",
    )
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _str_list(v)

    @field_validator("business_summary", "suggested_approach", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("recommended_contacts", mode="before")
    @classmethod
    def _contacts(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [c for c in v if isinstance(c, dict)]


class AdvisorySuggestion(_CamelModel):
    label: str = ""
    action: str = ""


class AdvisoryPayload(_CamelModel):
    summary: str = "No summary available."
    suggestions: list[AdvisorySuggestion] = Field(default_factory=list)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary(cls, v: Any) -> str:
        s = "" if v is None else str(v).strip()
        return s or "No summary available."

    @field_validator("suggestions", mode="before")
    @classmethod
    def _suggestions(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [s for s in v if isinstance(s, dict)][:3]
