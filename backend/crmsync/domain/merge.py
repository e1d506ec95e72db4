from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from datetime import datetime
from typing import Any, Iterable, Mapping

from .fields import INTEGRATION_METADATA_KEYS, FieldSpec, field
from .tree import UNSET, deep_merge, get_at, is_empty, prune_unset, set_at

# Top-level keys that describe syncs rather than business data
BOOKKEEPING_KEYS: frozenset[str] = frozenset({"integrations", "firmographics", "metadata", "lastEnrichedAt"})


@dataclass(frozen=True)
class Provenance:
    """
    Sparse field-id -> source-id map. A key exists only once some source wrote
    a non-empty value to that field; absence means the field is unowned.
    """
    owners: Mapping[str, str] = dc_field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "Provenance":
        if not raw:
            return cls({})
        return cls({str(k): str(v) for k, v in raw.items() if v})

    def owner_of(self, field_id: str) -> str | None:
        return self.owners.get(field_id)

    def with_owners(self, assignments: Mapping[str, str]) -> "Provenance":
        merged = dict(self.owners)
        merged.update(assignments)
        return Provenance(merged)

    def to_dict(self) -> dict[str, str]:
        return dict(self.owners)


@dataclass
class MergePlan:
    source_id: str
    update: dict[str, Any] = dc_field(default_factory=dict)
    ownership: dict[str, str] = dc_field(default_factory=dict)
    applied: list[str] = dc_field(default_factory=list)
    skipped: list[str] = dc_field(default_factory=list)

    def set_metadata(self, path: Iterable[str], value: Any) -> None:
        """Bookkeeping writes bypass gating entirely."""
        if value is UNSET:
            return
        set_at(self.update, path, value)

    def pruned_update(self) -> dict[str, Any]:
        return prune_unset(self.update)

    def updated_fields(self) -> list[str]:
        return sorted(k for k in self.update.keys() if k not in BOOKKEEPING_KEYS)

    def apply(self, data: Mapping[str, Any], provenance: Provenance) -> tuple[dict[str, Any], Provenance]:
        return deep_merge(data, self.pruned_update()), provenance.with_owners(self.ownership)


class MergeResolver:
    """
    Applies candidate values from one source onto a record under the ownership rule:
    a write lands iff the field is empty or already owned by the same source.
    """

    def __init__(self, source_id: str) -> None:
        if not source_id:
            raise ValueError("source_id is required")
        self.source_id = source_id

    def can_set(self, spec: FieldSpec, existing: Mapping[str, Any], provenance: Provenance) -> bool:
        # never turn a filled scalar ancestor (address kept as one string) into a dict
        path = spec.path
        for depth in range(1, len(path)):
            parent = get_at(existing, path[:depth])
            if parent is not UNSET and not isinstance(parent, Mapping) and not is_empty(parent):
                return False
        if provenance.owner_of(spec.id) == self.source_id:
            return True
        return is_empty(get_at(existing, path))

    def plan(
        self,
        existing: Mapping[str, Any],
        provenance: Provenance,
        candidates: Mapping[str, Any],
    ) -> MergePlan:
        plan = MergePlan(source_id=self.source_id)
        for field_id, raw in candidates.items():
            spec = field(field_id)
            if raw is UNSET:
                continue

            value = spec.normalize(raw)
            if value is UNSET:
                continue

            if not self.can_set(spec, existing, provenance):
                plan.skipped.append(spec.id)
                continue

            set_at(plan.update, spec.path, value)
            plan.applied.append(spec.id)
            if not is_empty(value):
                plan.ownership[spec.id] = self.source_id
        return plan

    def integration_metadata(
        self,
        plan: MergePlan,
        *,
        synced_at: datetime,
        organization_id: Any = None,
        signal_strength: str | None = None,
        source_label: str | None = None,
    ) -> MergePlan:
        values = {
            "lastSyncedAt": synced_at.isoformat(),
            "organizationId": organization_id,
            "signalStrength": signal_strength,
            "source": source_label,
        }
        for key in INTEGRATION_METADATA_KEYS:
            plan.set_metadata(("integrations", self.source_id, key), values[key])
        return plan
