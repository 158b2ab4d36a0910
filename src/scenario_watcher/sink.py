"""Event sink receiving normalized lifecycle events.

:class:`EventSink` is the interface the story reporter emits to.
:class:`OutcomeRecorder` is the default implementation: it turns the event
stream of one worker into :class:`~scenario_watcher.core.TestOutcome` records
that the report services later aggregate.
"""
from __future__ import annotations
import logging
import traceback
from typing import Iterable, List, Mapping, Optional, Protocol

from .core import DataTable, StepOutcome, StoryRef, TestOutcome, TestResult, TestTag
from .model import ExamplesTable


logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """Receiver of normalized test lifecycle events (one per worker)."""

    # suites and tests
    def test_suite_started(self, story: StoryRef) -> None: ...
    def test_suite_finished(self) -> None: ...
    def test_started(self, title: str) -> None: ...
    def test_finished(self) -> None: ...
    def test_pending(self) -> None: ...
    def test_skipped(self) -> None: ...
    def test_ignored(self) -> None: ...
    def test_is_manual(self) -> None: ...
    def suspend_test(self) -> None: ...

    # steps
    def step_started(self, title: str) -> None: ...
    def update_current_step_title(self, title: str) -> None: ...
    def step_finished(self) -> None: ...
    def step_pending(self) -> None: ...
    def step_ignored(self) -> None: ...
    def step_failed(self, title: str, cause: BaseException) -> None: ...
    def assumption_violated(self, message: str) -> None: ...
    def are_steps_running(self) -> bool: ...
    def set_all_steps_to(self, result: TestResult) -> None: ...

    # classification
    def add_issues_to_current_test(self, issues: List[str]) -> None: ...
    def add_tags_to_current_test(self, tags: List[TestTag]) -> None: ...
    def add_issues_to_current_story(self, issues: List[str]) -> None: ...
    def add_tags_to_current_story(self, tags: List[TestTag]) -> None: ...
    def set_metadata(self, metadata: Mapping[str, str]) -> None: ...

    # examples
    def use_examples_from(self, table: ExamplesTable) -> None: ...
    def example_started(self, row: Mapping[str, str]) -> None: ...
    def example_finished(self) -> None: ...
    def clear_step_failures(self) -> None: ...

    # annotation slot and collected outcomes
    @property
    def forced_result(self) -> Optional[TestResult]: ...
    @property
    def test_outcomes(self) -> List[TestOutcome]: ...


class OutcomeRecorder:
    """In-memory :class:`EventSink` building one outcome per reported test.

    Notes
    -----
    - Steps are appended to the open step (or the test) when they start, so
      the step tree is complete even while steps are running.
    - Once a test is suspended, or after a step failure, later steps finish
      as ``SKIPPED`` until the next test (or :meth:`clear_step_failures`).
    - Calls that need an open test while none is open are ignored.

    Examples
    --------
    >>> rec = OutcomeRecorder()
    >>> rec.test_started("Buy a car")
    >>> rec.step_started("Given a customer"); rec.step_finished()
    >>> rec.test_finished()
    >>> rec.test_outcomes[0].result
    <TestResult.SUCCESS: 'success'>
    """

    def __init__(self):
        self._outcomes: List[TestOutcome] = []
        self._suite: Optional[StoryRef] = None
        self._suite_tags: List[TestTag] = []
        self._suite_issues: List[str] = []
        self._test: Optional[TestOutcome] = None
        self._open_steps: List[StepOutcome] = []
        self._example_steps: List[StepOutcome] = []
        self._example_count = 0
        self._suspended = False
        self._step_failed = False
        self._forced_result: Optional[TestResult] = None

    # ------------------------------------------------------------------
    # suites and tests
    # ------------------------------------------------------------------

    @property
    def current_suite(self) -> Optional[StoryRef]:
        return self._suite

    @property
    def current_test(self) -> Optional[TestOutcome]:
        return self._test

    @property
    def test_outcomes(self) -> List[TestOutcome]:
        return self._outcomes

    def test_suite_started(self, story: StoryRef) -> None:
        self._suite = story
        self._suite_tags = []
        self._suite_issues = []

    def test_suite_finished(self) -> None:
        if self._test is not None:
            logger.warning("suite %s finished with test %r still open",
                           self._suite.id if self._suite else "?", self._test.title)
            self.test_finished()
        self._suite = None
        self._suite_tags = []
        self._suite_issues = []

    def test_started(self, title: str) -> None:
        if self._test is not None:
            logger.warning("test %r started while %r is still open", title, self._test.title)
            self.test_finished()
        self._test = TestOutcome.begin(title, story=self._suite)
        self._open_steps = []
        self._example_steps = []
        self._example_count = 0
        self._suspended = False
        self._step_failed = False
        self._forced_result = None

    def test_finished(self) -> None:
        test = self._test
        if test is None:
            logger.debug("test finished with no open test")
            return
        while self._open_steps:
            self._finish_top()
        test.add_tags(self._suite_tags)
        test.add_issues(self._suite_issues)
        test.stamp_finished()
        self._outcomes.append(test)
        self._test = None
        self._example_steps = []

    def test_pending(self) -> None:
        self._annotate(TestResult.PENDING)

    def test_skipped(self) -> None:
        self._annotate(TestResult.SKIPPED)

    def test_ignored(self) -> None:
        self._annotate(TestResult.IGNORED)

    def test_is_manual(self) -> None:
        if self._test is None:
            logger.debug("manual flag with no open test")
            return
        self._test.manual = True
        self._suspended = True

    def suspend_test(self) -> None:
        self._suspended = True

    @property
    def suspended(self) -> bool:
        return self._suspended

    def _annotate(self, result: TestResult) -> None:
        if self._test is None:
            logger.debug("%s result with no open test", result.value)
            return
        self._test.annotated_result = result
        self._suspended = True

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------

    def are_steps_running(self) -> bool:
        return bool(self._open_steps)

    def step_started(self, title: str) -> None:
        if self._test is None:
            logger.debug("step %r started with no open test", title)
            return
        step = StepOutcome.begin(title)
        self._children_of_top().append(step)
        self._open_steps.append(step)

    def update_current_step_title(self, title: str) -> None:
        if self._open_steps:
            self._open_steps[-1].title = title

    def step_finished(self) -> None:
        if not self._open_steps:
            logger.debug("step finished with no open step")
            return
        self._finish_top()

    def step_pending(self) -> None:
        if self._open_steps:
            self._pop_open_step().finish(TestResult.PENDING)

    def step_ignored(self) -> None:
        if self._open_steps:
            self._pop_open_step().finish(TestResult.IGNORED)

    def step_failed(self, title: str, cause: BaseException) -> None:
        if self._test is None:
            logger.debug("step %r failed with no open test", title)
            return
        if not self._open_steps:
            self.step_started(title)
        step = self._pop_open_step()
        step.title = title
        if self._suspended:
            step.finish(TestResult.SKIPPED)
            return
        step.errors.append(f"{type(cause).__name__}: {cause}")
        step.metadata["traceback"] = "".join(
            traceback.format_exception(type(cause), cause, cause.__traceback__)
        )
        step.finish(TestResult.FAILURE if isinstance(cause, AssertionError) else TestResult.ERROR)
        self._step_failed = True

    def assumption_violated(self, message: str) -> None:
        if self._test is None:
            logger.debug("assumption violated with no open test: %s", message)
            return
        if self._open_steps and not self._is_example(self._open_steps[-1]):
            self._open_steps.pop().finish(TestResult.SKIPPED)
        self._test.assumption = message
        self._annotate(TestResult.SKIPPED)

    def set_all_steps_to(self, result: TestResult) -> None:
        if self._test is not None:
            self._test.set_all_steps_to(result)

    def _is_example(self, step: StepOutcome) -> bool:
        return any(s is step for s in self._example_steps)

    def _children_of_top(self) -> List[StepOutcome]:
        if self._open_steps:
            return self._open_steps[-1].children
        return self._test.steps

    def _pop_open_step(self) -> StepOutcome:
        step = self._open_steps.pop()
        self._example_steps = [s for s in self._example_steps if s is not step]
        return step

    def _finish_top(self) -> None:
        step = self._pop_open_step()
        if step.children:
            step.finish()
        elif self._suspended or self._step_failed:
            step.finish(TestResult.SKIPPED)
        else:
            step.finish(TestResult.SUCCESS)

    # ------------------------------------------------------------------
    # classification
    # ------------------------------------------------------------------

    def add_issues_to_current_test(self, issues: Iterable[str]) -> None:
        if self._test is not None:
            self._test.add_issues(issues)

    def add_tags_to_current_test(self, tags: Iterable[TestTag]) -> None:
        if self._test is not None:
            self._test.add_tags(tags)

    def add_issues_to_current_story(self, issues: Iterable[str]) -> None:
        for issue in issues:
            if issue not in self._suite_issues:
                self._suite_issues.append(issue)

    def add_tags_to_current_story(self, tags: Iterable[TestTag]) -> None:
        for tag in tags:
            if tag not in self._suite_tags:
                self._suite_tags.append(tag)

    def set_metadata(self, metadata: Mapping[str, str]) -> None:
        if self._test is not None:
            self._test.metadata = dict(metadata)

    # ------------------------------------------------------------------
    # examples
    # ------------------------------------------------------------------

    def use_examples_from(self, table: ExamplesTable) -> None:
        if self._test is None:
            logger.debug("examples table with no open test")
            return
        self._test.examples = DataTable(headers=list(table.headers),
                                        rows=[dict(row) for row in table.rows])
        self._example_count = 0

    def example_started(self, row: Mapping[str, str]) -> None:
        if self._test is None:
            logger.debug("example row with no open test")
            return
        self._example_count += 1
        values = ", ".join(f"{key}={value}" for key, value in row.items())
        self.step_started(f"[{self._example_count}] {{{values}}}")
        self._example_steps.append(self._open_steps[-1])

    def example_finished(self) -> None:
        if not self._example_steps:
            logger.debug("example finished with no open example")
            return
        example = self._example_steps[-1]
        while self._open_steps and self._open_steps[-1] is not example:
            self._finish_top()
        if self._open_steps:
            self._finish_top()

    def clear_step_failures(self) -> None:
        self._step_failed = False

    # ------------------------------------------------------------------
    # annotation slot
    # ------------------------------------------------------------------

    @property
    def forced_result(self) -> Optional[TestResult]:
        return self._forced_result

    def force_result(self, result: TestResult | None) -> None:
        """Annotate the running test's steps with a result (e.g. a pending step library)."""
        self._forced_result = result
