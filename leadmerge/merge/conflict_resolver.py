"""
Field-level conflict resolution for merging duplicate leads.

A :class:`ConflictResolutionPolicy` names one :class:`MergeRule` per field
category; :class:`ConflictResolver` applies it to a primary lead and its
secondaries and records each decision as a :class:`ConflictResolution`.
"""

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.lead import Lead, Priority, unique
from ..errors import InvalidPolicy


class MergeRule(Enum):
    """How values from several merged leads combine."""
    UNION_ALL = "union_all"
    MERGE_ALL = "merge_all"
    KEEP_PRIMARY = "keep_primary"
    KEEP_NEWEST = "keep_newest"
    KEEP_HIGHEST = "keep_highest"
    CONCATENATE = "concatenate"


# Rules each policy field accepts; the first is the default
ALLOWED_RULES = {
    'programs': (MergeRule.UNION_ALL, MergeRule.KEEP_PRIMARY),
    'documents': (MergeRule.MERGE_ALL, MergeRule.KEEP_PRIMARY),
    'status': (MergeRule.KEEP_PRIMARY, MergeRule.KEEP_NEWEST),
    'priority': (MergeRule.KEEP_HIGHEST, MergeRule.KEEP_PRIMARY),
    'lead_score': (MergeRule.KEEP_HIGHEST, MergeRule.KEEP_PRIMARY),
    'tags': (MergeRule.UNION_ALL, MergeRule.KEEP_PRIMARY),
    'notes': (MergeRule.CONCATENATE, MergeRule.KEEP_PRIMARY),
}

# Set-valued fields historically configured as "merge_all"
_UNION_ALIASES = {'programs', 'tags'}

_POLICY_KEYS = {'leadScore': 'lead_score'}


@dataclass(frozen=True)
class ConflictResolutionPolicy:
    """Per-field merge rules applied when merging a duplicate group."""
    programs: MergeRule = MergeRule.UNION_ALL
    documents: MergeRule = MergeRule.MERGE_ALL
    status: MergeRule = MergeRule.KEEP_PRIMARY
    priority: MergeRule = MergeRule.KEEP_HIGHEST
    lead_score: MergeRule = MergeRule.KEEP_HIGHEST
    tags: MergeRule = MergeRule.UNION_ALL
    notes: MergeRule = MergeRule.CONCATENATE

    def __post_init__(self):
        for f in fields(self):
            rule = self._coerce(f.name, getattr(self, f.name))
            object.__setattr__(self, f.name, rule)

    @staticmethod
    def _coerce(name: str, value: Any) -> MergeRule:
        try:
            rule = value if isinstance(value, MergeRule) else MergeRule(str(value).lower())
        except ValueError as e:
            raise InvalidPolicy(f"Unknown merge rule for {name}: {value!r}") from e

        if name in _UNION_ALIASES and rule is MergeRule.MERGE_ALL:
            rule = MergeRule.UNION_ALL
        if rule not in ALLOWED_RULES[name]:
            allowed = ', '.join(r.value for r in ALLOWED_RULES[name])
            raise InvalidPolicy(f"{name} does not accept {rule.value} (allowed: {allowed})")
        return rule

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'ConflictResolutionPolicy':
        """Build a policy from a mapping; camelCase ``leadScore`` is accepted."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _POLICY_KEYS.get(key, key)
            if name not in known:
                raise InvalidPolicy(f"Unknown policy field: {key}")
            values[name] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        return {f.name: getattr(self, f.name).value for f in fields(self)}


@dataclass
class ConflictResolution:
    """Resolution of one field across the merged leads."""
    field: str
    primary_value: Any
    chosen: Any
    rule: Optional[MergeRule]
    reason: str

    def __str__(self) -> str:
        """Human-readable description."""
        rule = self.rule.value if self.rule else 'fill_blank'
        return (
            f"Field: {self.field}\n"
            f"  Primary: {self.primary_value}\n"
            f"  Chosen: {self.chosen}\n"
            f"  Rule: {rule}\n"
            f"  Reason: {self.reason}"
        )


class ConflictResolver:
    """
    Builds the merged primary lead from a group's members.

    Resolution Rules:
    1. Set fields (programs, tags) - union across members or keep primary
    2. Priority - most urgent across members or keep primary
    3. Lead score - highest across members or keep primary
    4. Status - newest member's status or keep primary
    5. Notes - all non-empty notes joined or keep primary
    6. Blank scalar fields - first non-blank value among secondaries
    7. A merge annotation is always appended to the notes
    """

    def __init__(self, policy: Optional[ConflictResolutionPolicy] = None,
                 notes_separator: str = "\n\n---\n\n"):
        self.policy = policy or ConflictResolutionPolicy()
        self.notes_separator = notes_separator

    def resolve(
        self,
        primary: Lead,
        secondaries: List[Lead],
        merged_at: Optional[datetime] = None
    ) -> tuple[Lead, List[ConflictResolution]]:
        """
        Compute the merged primary lead.

        Args:
            primary: Surviving lead
            secondaries: Leads merged into it, in group order
            merged_at: Timestamp used in the merge annotation

        Returns:
            (merged lead, resolutions for every field that changed)
        """
        merged_at = merged_at or datetime.now(timezone.utc)
        members = [primary] + list(secondaries)
        merged = primary.copy()
        resolutions: List[ConflictResolution] = []

        def record(field_name: str, chosen: Any, rule: Optional[MergeRule], reason: str):
            before = getattr(primary, field_name)
            if chosen != before:
                setattr(merged, field_name, chosen)
                resolutions.append(ConflictResolution(
                    field=field_name, primary_value=before, chosen=chosen,
                    rule=rule, reason=reason,
                ))

        if self.policy.programs is MergeRule.UNION_ALL:
            programs = unique([p for lead in members for p in lead.program_interest])
            record('program_interest', programs, MergeRule.UNION_ALL,
                   'Union of all members\' programs')

        if self.policy.tags is MergeRule.UNION_ALL:
            tags = unique([t for lead in members for t in lead.tags])
            record('tags', tags, MergeRule.UNION_ALL, 'Union of all members\' tags')

        if self.policy.priority is MergeRule.KEEP_HIGHEST:
            priority = Priority.most_urgent([lead.priority for lead in members])
            record('priority', priority, MergeRule.KEEP_HIGHEST, 'Most urgent priority')

        if self.policy.lead_score is MergeRule.KEEP_HIGHEST:
            score = max(lead.lead_score or 0 for lead in members)
            record('lead_score', score, MergeRule.KEEP_HIGHEST, 'Highest lead score')

        if self.policy.status is MergeRule.KEEP_NEWEST:
            newest = max(members, key=lambda lead: lead.created_at)
            record('status', newest.status, MergeRule.KEEP_NEWEST,
                   f'Status of newest lead {newest.id}')

        for field_name in Lead.FILLABLE_FIELDS:
            if getattr(primary, field_name):
                continue
            donor = next((lead for lead in secondaries if getattr(lead, field_name)), None)
            if donor is not None:
                record(field_name, getattr(donor, field_name), None,
                       f'Primary was blank, filled from lead {donor.id}')

        notes = primary.notes
        if self.policy.notes is MergeRule.CONCATENATE:
            notes = self.notes_separator.join(lead.notes for lead in members if lead.notes)
        annotation = (
            f"[Merged {len(secondaries)} duplicate(s) on "
            f"{merged_at.strftime('%Y-%m-%d %H:%M UTC')}]"
        )
        record('notes', f"{notes}\n\n{annotation}".strip(), self.policy.notes,
               'Merge annotation appended')

        return merged, resolutions

    @staticmethod
    def resolve_pair(primary: Lead, secondary: Lead,
                     merged_at: Optional[datetime] = None) -> tuple[Lead, List[ConflictResolution]]:
        """
        Fixed two-lead merge: fill blanks, union sets, keep the higher score.

        Priority and status are left as the primary's; the note records the
        secondary's email.
        """
        merged_at = merged_at or datetime.now(timezone.utc)
        resolver = ConflictResolver(ConflictResolutionPolicy(
            priority=MergeRule.KEEP_PRIMARY,
            notes=MergeRule.KEEP_PRIMARY,
        ))
        merged, resolutions = resolver.resolve(primary, [secondary], merged_at)

        source = secondary.email or secondary.id
        annotation = f"[Merged from duplicate lead {source} on {merged_at.strftime('%Y-%m-%d')}]"
        merged.notes = f"{primary.notes}\n\n{annotation}".strip()
        for resolution in resolutions:
            if resolution.field == 'notes':
                resolution.chosen = merged.notes
        return merged, resolutions
