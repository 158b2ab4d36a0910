from typing import Iterable, List, Optional

from scenario_watcher.core import TestOutcome, TestResult
from scenario_watcher.model import ExamplesTable, GivenStory, Meta, Scenario, Story


class FakeDriver:
    def __init__(self, name: str = "default"):
        self.name = name
        self.closed = False
        self.quit_called = False

    def close(self):
        self.closed = True

    def quit(self):
        self.quit_called = True


class FakeDriverSupport:
    """Records every call the reporter makes to the driver collaborator."""

    def __init__(self, instantiated: bool = False, alive: bool = True, fail_initialize: bool = False):
        self.calls: List[tuple] = []
        self.driver = FakeDriver()
        self.instantiated = instantiated
        self.alive = alive
        self.fail_initialize = fail_initialize

    def initialize(self, name: Optional[str] = None) -> None:
        self.calls.append(("initialize", name))
        if self.fail_initialize:
            raise RuntimeError("browser did not start")
        self.driver = FakeDriver(name or "default")

    def get_driver(self):
        return self.driver

    def reset_driver(self, driver) -> None:
        self.calls.append(("reset_driver", driver))

    def clear_session(self) -> None:
        self.calls.append(("clear_session",))

    def is_instantiated(self) -> bool:
        return self.instantiated

    def ping(self, driver) -> None:
        if not self.alive:
            raise ConnectionError("session is gone")

    def use_unique_session(self, unique: bool) -> None:
        self.calls.append(("use_unique_session", unique))

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class RecordingReportService:
    def __init__(self):
        self.calls: List[List[TestOutcome]] = []

    def generate_reports_for(self, outcomes) -> None:
        self.calls.append(list(outcomes))


def make_scenario(title: str, steps: Iterable[str] = ("Given a customer", "When they pay"),
                  meta: Meta | None = None, rows: List[dict] | None = None) -> Scenario:
    examples = ExamplesTable(headers=list(rows[0]) if rows else [], rows=rows or [])
    return Scenario(title=title, meta=meta or Meta(), steps=list(steps), examples=examples)


def make_story(name: str = "make_a_purchase.story", scenarios: Iterable[Scenario] = (),
               meta: Meta | None = None, given: Iterable[str] = (), description: str = "") -> Story:
    return Story(
        name=name,
        path=f"stories/{name}",
        description=description,
        meta=meta or Meta(),
        scenarios=list(scenarios),
        given_stories=[GivenStory(path=path) for path in given],
    )


def run_steps(reporter, steps: Iterable[str]) -> None:
    for step in steps:
        reporter.before_step(step)
        reporter.successful(step)


def run_story(reporter, story: Story) -> None:
    reporter.before_story(story)
    for scenario in story.scenarios:
        reporter.before_scenario(scenario.title)
        run_steps(reporter, scenario.steps)
        reporter.after_scenario()
    reporter.after_story()


def outcome_titled(reporter, title: str) -> TestOutcome:
    matches = [o for o in reporter.get_all_test_outcomes() if o.title == title]
    assert len(matches) == 1, f"expected one outcome titled {title!r}, found {len(matches)}"
    return matches[0]


def all_steps_are(outcome: TestOutcome, result: TestResult) -> bool:
    steps = list(outcome.iter_steps())
    assert steps, "outcome has no steps"
    for step in steps:
        assert step.result == result, f"{step.title!r} is {step.result}, not {result}"
    return True


def stacks_are_empty(reporter) -> bool:
    ctx = reporter.context
    assert ctx.stack.story_depth == 0
    assert ctx.stack.scenario_depth == 0
    assert ctx.given_stories.depth == 0
    return True
