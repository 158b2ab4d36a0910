"""Outcome records and result enums for scenario-watcher.

This module holds the result enum and the Pydantic models the event sink
builds while a run is in progress: one :class:`TestOutcome` per reported
scenario, each holding a tree of :class:`StepOutcome`, and the
:class:`RunReport` written by the report services.

The intent is to keep these pieces framework-agnostic and JSON-friendly.
"""
# std lib imports
from __future__ import annotations
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, Iterable, Iterator, List, Optional

# third party import
from pydantic import BaseModel, Field, computed_field

# local imports
from .clocks import now_utc as _now
from .utilities import _slugify


#: Schema version written to JSON artifacts.
SCHEMA_VERSION = "v1"


class LowerStrEnum(str, Enum):
    def _generate_next_value_(name, start, count, last_values):
        return name.lower()


class TestResult(LowerStrEnum):
    """Reported result of a test or step."""
    __test__ = False  # not a pytest test class

    UNDEFINED = auto()   # Not determined yet.
    SUCCESS = auto()     # Ran and passed.
    FAILURE = auto()     # An assertion did not hold.
    ERROR = auto()       # An unexpected exception was raised.
    PENDING = auto()     # Declared but not implemented (or forced pending).
    SKIPPED = auto()     # Not executed (wip/skip, earlier failure, violated assumption).
    IGNORED = auto()     # Deliberately excluded from the run.

    @property
    def failed(self) -> bool:
        return self in {TestResult.FAILURE, TestResult.ERROR}

    @property
    def succeeded(self) -> bool:
        return self is TestResult.SUCCESS

    @property
    def undefined(self) -> bool:
        return self is TestResult.UNDEFINED

    @classmethod
    def aggregate(cls, results: Iterable["TestResult"]) -> "TestResult":
        """Roll a collection of results up into one.

        ``ERROR`` beats ``FAILURE`` beats ``PENDING``; a collection made only
        of ``IGNORED`` is ``IGNORED``; otherwise any ``SUCCESS`` gives
        ``SUCCESS`` and any ``SKIPPED`` gives ``SKIPPED``. An empty collection
        aggregates to ``SUCCESS``.

        Examples
        --------
        >>> TestResult.aggregate([TestResult.SUCCESS, TestResult.FAILURE])
        <TestResult.FAILURE: 'failure'>
        """
        found = [r for r in results if r is not cls.UNDEFINED]
        if not found:
            return cls.SUCCESS
        for result in (cls.ERROR, cls.FAILURE, cls.PENDING):
            if result in found:
                return result
        if all(r is cls.IGNORED for r in found):
            return cls.IGNORED
        if cls.SUCCESS in found:
            return cls.SUCCESS
        if cls.SKIPPED in found:
            return cls.SKIPPED
        return cls.IGNORED


class TestTag(BaseModel):
    """Classification tag attached to a test or story.

    Examples
    --------
    >>> TestTag(name="Checkout", type="feature")
    TestTag(name='Checkout', type='feature')
    """
    __test__ = False  # not a pytest test class

    name: str
    type: str

    def __str__(self) -> str:
        return f"{self.type}:{self.name}"


class DataTable(BaseModel):
    """Example-table data attached to a parameterised test."""
    headers: List[str] = Field(default_factory=list)
    rows: List[Dict[str, str]] = Field(default_factory=list)


class StoryRef(BaseModel):
    """Identity of the story (test suite) a test belongs to."""
    id: str
    title: str
    path: str = ""
    narrative: str = ""


class OutcomeBase(BaseModel):
    """Common lifecycle for recorded units (steps/tests).

    Provides ``start → finish(result)`` with timestamps, error messages and
    free-form metadata.

    Attributes
    ----------
    title : str
        Human-readable title (step text or scenario title).
    started_at : datetime | None
        UTC timestamp when the unit started.
    finished_at : datetime | None
        UTC timestamp when the unit finished.
    errors : list[str]
        ``"{Type}: {message}"`` lines for failures.
    metadata : dict[str, Any]
        Structured context (tracebacks, session metadata).
    """
    title: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    errors: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    report_version: str = SCHEMA_VERSION

    def start(self):
        if not self.started_at:
            self.started_at = _now()
        return self

    def stamp_finished(self):
        if not self.finished_at:
            self.finished_at = _now()
        return self

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    @computed_field
    @property
    def duration_ms(self) -> float | None:
        """
        Elapsed time in milliseconds.

        Returns None if timing cannot be determined (e.g., no started_at).
        Uses finished_at when present; otherwise uses 'now' to reflect
        in-flight duration. Clamped at >= 0 and rounded to 3 decimals.
        """
        if not self.started_at:
            return None
        end = self.finished_at or _now()
        delta_ms = (end - self.started_at).total_seconds() * 1000.0
        return round(max(delta_ms, 0.0), 3)


class StepOutcome(OutcomeBase):
    """Single reported step, possibly holding nested steps.

    Nested steps come from given-story scenarios reported inside an enclosing
    scenario and from example rows.

    Examples
    --------
    >>> st = StepOutcome.begin("Given a customer")
    >>> st.finish(TestResult.SUCCESS).result
    <TestResult.SUCCESS: 'success'>
    """
    result: TestResult = TestResult.UNDEFINED
    children: List["StepOutcome"] = Field(default_factory=list)

    @classmethod
    def begin(cls, title: str) -> "StepOutcome":
        return cls(title=title).start()

    def finish(self, result: TestResult | None = None) -> "StepOutcome":
        """Close the step.

        Without an explicit result, a step with children takes their
        aggregate and a leaf step succeeds.
        """
        if result is None:
            result = (TestResult.aggregate(c.result for c in self.children)
                      if self.children else TestResult.SUCCESS)
        self.result = result
        self.stamp_finished()
        return self

    def set_all_to(self, result: TestResult) -> None:
        self.result = result
        for child in self.children:
            child.set_all_to(result)

    def walk(self) -> Iterator["StepOutcome"]:
        yield self
        for child in self.children:
            yield from child.walk()


class TestOutcome(OutcomeBase):
    """Everything recorded for one scenario reported as a test.

    Attributes
    ----------
    story : StoryRef or None
        Suite the test ran in.
    steps : list[StepOutcome]
        Top-level steps in report order.
    tags : list[TestTag]
        Feature/epic/free-form tags of the scenario and its story.
    issues : list[str]
        Issue keys of the scenario and its story.
    examples : DataTable or None
        Example table when the scenario is parameterised.
    manual : bool
        Whether the scenario is flagged manual.
    annotated_result : TestResult or None
        Result forced by metadata or by a violated assumption; wins over the
        step roll-up.
    assumption : str or None
        Message of the violated assumption, if any.
    """
    __test__ = False  # not a pytest test class

    story: Optional[StoryRef] = None
    steps: List[StepOutcome] = Field(default_factory=list)
    tags: List[TestTag] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)
    examples: Optional[DataTable] = None
    manual: bool = False
    annotated_result: Optional[TestResult] = None
    assumption: Optional[str] = None

    @classmethod
    def begin(cls, title: str, story: StoryRef | None = None) -> "TestOutcome":
        return cls(title=title, story=story).start()

    @computed_field
    @property
    def id(self) -> str:
        prefix = f"{self.story.id}-" if self.story else ""
        return _slugify(prefix + self.title) or "test"

    @computed_field
    @property
    def result(self) -> TestResult:
        if self.annotated_result is not None:
            return self.annotated_result
        return TestResult.aggregate(s.result for s in self.steps)

    def add_tags(self, tags: Iterable[TestTag]) -> None:
        for tag in tags:
            if tag not in self.tags:
                self.tags.append(tag)

    def add_issues(self, issues: Iterable[str]) -> None:
        for issue in issues:
            if issue not in self.issues:
                self.issues.append(issue)

    def set_all_steps_to(self, result: TestResult) -> None:
        for step in self.steps:
            step.set_all_to(result)

    def iter_steps(self) -> Iterator[StepOutcome]:
        """Iterate over every step of the test, depth first."""
        for step in self.steps:
            yield from step.walk()


class RunReport(BaseModel):
    """Run-level container written by the report services.

    Attributes
    ----------
    label : str
        Human-friendly run label.
    generated_at : datetime
        Generation timestamp (UTC).
    outcomes : list[TestOutcome]
        Every test outcome collected from every worker.
    """
    label: str = "Scenario run"
    generated_at: datetime = Field(default_factory=_now)
    report_version: str = SCHEMA_VERSION
    outcomes: List[TestOutcome] = Field(default_factory=list)

    @computed_field
    @property
    def counts(self) -> Dict[str, int]:
        counts = {r.value: 0 for r in TestResult}
        for outcome in self.outcomes:
            counts[outcome.result.value] += 1
        return counts

    @computed_field
    @property
    def result(self) -> TestResult:
        return TestResult.aggregate(o.result for o in self.outcomes)

    def outcomes_with(self, result: TestResult) -> List[TestOutcome]:
        return [o for o in self.outcomes if o.result == result]
