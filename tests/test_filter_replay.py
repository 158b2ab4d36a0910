from scenario_watcher.core import TestResult
from scenario_watcher.model import Meta
from scenario_watcher.reporter import StoryReporter
from scenario_watcher.settings import ReporterSettings
from .helpers import *


def new_reporter():
    service = RecordingReportService()
    reporter = StoryReporter(settings=ReporterSettings(), driver_support=FakeDriverSupport(),
                             report_services=[service])
    return reporter, service


def cars_story(story_meta=None):
    return make_story(
        name="cars.story",
        scenarios=[
            make_scenario("A"),
            make_scenario("B", meta=Meta.of(skip="")),
        ],
        meta=story_meta,
    )


def test_skipped_story_replays_every_scenario():
    reporter, service = new_reporter()
    story = cars_story(Meta.of(skip=""))
    processed = reporter.process_excluded_by_filter(story, set())

    assert processed == ["stories/cars.storyA", "stories/cars.storyB"]
    assert len(service.calls) == 1
    outcomes = service.calls[0]
    assert [o.title for o in outcomes] == ["A", "B"]
    for outcome in outcomes:
        assert outcome.result == TestResult.SKIPPED
        assert all_steps_are(outcome, TestResult.SKIPPED)
    assert stacks_are_empty(reporter)


def test_excluded_keys_are_not_replayed():
    reporter, service = new_reporter()
    story = cars_story(Meta.of(skip=""))
    processed = reporter.process_excluded_by_filter(story, {"stories/cars.storyB"})

    assert processed == ["stories/cars.storyA"]
    assert [o.title for o in service.calls[0]] == ["A"]


def test_only_flagged_scenarios_are_replayed_for_a_runnable_story():
    reporter, service = new_reporter()
    processed = reporter.process_excluded_by_filter(cars_story(), set())

    assert processed == ["stories/cars.storyB"]
    outcome = service.calls[0][0]
    assert outcome.title == "B"
    assert outcome.result == TestResult.SKIPPED


def test_nothing_flagged_means_nothing_replayed():
    reporter, service = new_reporter()
    story = make_story(scenarios=[make_scenario("A")])
    assert reporter.process_excluded_by_filter(story, set()) == []
    assert service.calls == []


def test_replay_covers_example_rows():
    reporter, service = new_reporter()
    rows = [{"size": "small"}, {"size": "large"}]
    story = make_story(name="cars.story", scenarios=[
        make_scenario("Sizes", steps=["Given a <size> car"], meta=Meta.of(ignore=""), rows=rows),
    ])
    assert reporter.process_excluded_by_filter(story) == ["stories/cars.storySizes"]

    outcome = service.calls[0][0]
    assert outcome.result == TestResult.IGNORED
    assert [s.title for s in outcome.steps] == ["[1] {size=small}", "[2] {size=large}"]
    assert all_steps_are(outcome, TestResult.IGNORED)
