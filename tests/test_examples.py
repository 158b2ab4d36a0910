from scenario_watcher.core import TestResult
from scenario_watcher.model import ExamplesTable
from scenario_watcher.reporter import StoryReporter
from scenario_watcher.settings import ReporterSettings
from .helpers import *


ROWS = [{"amount": str(n)} for n in range(1, 8)]
STEPS = ["Given a basket of <amount>", "When they pay"]


def run_examples(reporter, scenario_title: str, rows, after_each_row=None):
    reporter.before_scenario(scenario_title)
    reporter.before_examples(STEPS, ExamplesTable(headers=["amount"], rows=rows))
    for row in rows:
        reporter.example(row)
        run_steps(reporter, STEPS)
        if after_each_row is not None:
            after_each_row()
    reporter.after_examples()
    reporter.after_scenario()


def test_driver_restarts_every_nth_row():
    support = FakeDriverSupport()
    reporter = StoryReporter(
        settings=ReporterSettings(restart_browser_each_scenario=False, restart_frequency=3),
        driver_support=support,
    )
    reporter.before_story(make_story(scenarios=[make_scenario("Baskets", steps=STEPS, rows=ROWS)]))

    resets_per_row = []
    seen = [0]

    def record():
        now = support.count("reset_driver")
        resets_per_row.append(now - seen[0])
        seen[0] = now

    run_examples(reporter, "Baskets", ROWS, after_each_row=record)
    reporter.after_story()
    assert resets_per_row == [0, 0, 1, 0, 0, 1, 0]


def test_zero_frequency_never_restarts():
    support = FakeDriverSupport()
    reporter = StoryReporter(
        settings=ReporterSettings(restart_browser_each_scenario=False, restart_frequency=0),
        driver_support=support,
    )
    reporter.before_story(make_story(scenarios=[make_scenario("Baskets", steps=STEPS, rows=ROWS)]))
    run_examples(reporter, "Baskets", ROWS)
    reporter.after_story()
    assert support.count("reset_driver") == 0


def test_rows_of_later_scenarios_reset_the_driver_each_time():
    support = FakeDriverSupport()
    reporter = StoryReporter(settings=ReporterSettings(), driver_support=support)
    rows = ROWS[:2]
    reporter.before_story(make_story(scenarios=[
        make_scenario("Plain"),
        make_scenario("Baskets", steps=STEPS, rows=rows),
    ]))
    reporter.before_scenario("Plain")
    run_steps(reporter, ["Given a customer"])
    reporter.after_scenario()
    assert support.count("reset_driver") == 0

    run_examples(reporter, "Baskets", rows)
    reporter.after_story()
    # one for the scenario, one per row
    assert support.count("reset_driver") == 3


def test_each_row_is_a_step_holding_the_row_steps():
    reporter = StoryReporter(settings=ReporterSettings())
    rows = ROWS[:3]
    reporter.before_story(make_story(scenarios=[make_scenario("Baskets", steps=STEPS, rows=rows)]))
    run_examples(reporter, "Baskets", rows)
    reporter.after_story()

    outcome = outcome_titled(reporter, "Baskets")
    assert outcome.examples.headers == ["amount"]
    assert outcome.examples.rows == rows
    assert [s.title for s in outcome.steps] == ["[1] {amount=1}", "[2] {amount=2}", "[3] {amount=3}"]
    for row_step in outcome.steps:
        assert [c.title for c in row_step.children] == STEPS
        assert row_step.result == TestResult.SUCCESS
    assert outcome.result == TestResult.SUCCESS


def test_failure_in_one_row_does_not_skip_the_next_row():
    reporter = StoryReporter(settings=ReporterSettings())
    rows = ROWS[:2]
    reporter.before_story(make_story(scenarios=[make_scenario("Baskets", steps=STEPS, rows=rows)]))
    reporter.before_scenario("Baskets")
    reporter.before_examples(STEPS, ExamplesTable(headers=["amount"], rows=rows))

    reporter.example(rows[0])
    reporter.before_step(STEPS[0])
    reporter.failed(STEPS[0], AssertionError("basket is empty"))
    reporter.before_step(STEPS[1])
    reporter.successful(STEPS[1])

    reporter.example(rows[1])
    run_steps(reporter, STEPS)
    reporter.after_examples()
    reporter.after_scenario()
    reporter.after_story()

    first, second = outcome_titled(reporter, "Baskets").steps
    assert [c.result for c in first.children] == [TestResult.FAILURE, TestResult.SKIPPED]
    assert first.result == TestResult.FAILURE
    assert second.result == TestResult.SUCCESS
    assert reporter.context.example_count == 2
