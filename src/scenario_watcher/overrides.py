"""Outcome overrides driven by story and scenario metadata.

A scenario's reported result normally comes from its steps. Metadata can
force it instead: ``pending`` forces PENDING, ``wip``/``skip`` force SKIPPED
and ``ignore`` forces IGNORED. ``manual`` forces nothing; it flags the test as
manual and suspends it.

Precedence: a forced result on the scenario wins over one on its story; a
forced result on either is enough to override the whole scenario and all of
its steps.
"""
from __future__ import annotations
from enum import Enum
from typing import NamedTuple, Optional

from .core import TestResult
from .metadata import MetadataFlags, MetadataResolver
from .model import Meta


class ForcedOutcome(str, Enum):
    """State of the forced-result slot of a scenario (or story)."""
    UNDETERMINED = "undetermined"
    PENDING = "pending"
    SKIPPED = "skipped"
    IGNORED = "ignored"

    @property
    def determined(self) -> bool:
        return self is not ForcedOutcome.UNDETERMINED

    @property
    def result(self) -> Optional[TestResult]:
        """The :class:`TestResult` to report, or ``None`` if undetermined."""
        if self is ForcedOutcome.UNDETERMINED:
            return None
        return TestResult(self.value)

    @classmethod
    def from_flags(cls, flags: MetadataFlags) -> "ForcedOutcome":
        if flags.is_pending:
            return cls.PENDING
        if flags.is_skipped:
            return cls.SKIPPED
        if flags.is_ignored:
            return cls.IGNORED
        return cls.UNDETERMINED


class ScenarioVerdict(NamedTuple):
    """Result of evaluating a scenario's metadata."""
    outcome: ForcedOutcome
    manual: bool


class OutcomeOverrideEngine:
    """Computes forced outcomes from story and scenario metadata.

    Examples
    --------
    >>> engine = OutcomeOverrideEngine()
    >>> engine.evaluate_scenario(Meta.of(pending=""), Meta()).outcome
    <ForcedOutcome.PENDING: 'pending'>
    >>> engine.effective(Meta.of(skip=""), ForcedOutcome.UNDETERMINED)
    <ForcedOutcome.SKIPPED: 'skipped'>
    """

    def __init__(self, resolver: MetadataResolver | None = None):
        self.resolver = resolver or MetadataResolver()

    def story_outcome(self, story_meta: Meta) -> ForcedOutcome:
        return ForcedOutcome.from_flags(self.resolver.resolve(story_meta))

    def suspends_story(self, story_meta: Meta) -> bool:
        """True if the story's own metadata forces a result."""
        return self.story_outcome(story_meta).determined

    def evaluate_scenario(self, scenario_meta: Meta, story_meta: Meta) -> ScenarioVerdict:
        """Evaluate the scenario's own flags.

        The manual check covers the scenario and its story and is independent
        of the forced outcome, which only looks at the scenario's flags.
        """
        scenario_flags = self.resolver.resolve(scenario_meta)
        manual = scenario_flags.is_manual or self.resolver.resolve(story_meta).is_manual
        return ScenarioVerdict(outcome=ForcedOutcome.from_flags(scenario_flags), manual=manual)

    def effective(self, story_meta: Meta, scenario_outcome: ForcedOutcome) -> ForcedOutcome:
        """Outcome to report for a scenario: its own if determined, else its story's."""
        if scenario_outcome.determined:
            return scenario_outcome
        return self.story_outcome(story_meta)
