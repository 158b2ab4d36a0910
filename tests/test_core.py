import json
from pathlib import Path

from scenario_watcher import (
    RunReport, StepOutcome, StoryRef, TestOutcome, TestResult, TestTag, dump_report, now_utc
)


####################
# TestResult TESTS #
####################

def test_result_values_are_lower_case():
    assert TestResult.SUCCESS.value == "success"
    assert TestResult("skipped") is TestResult.SKIPPED


def test_aggregate_precedence():
    agg = TestResult.aggregate
    assert agg([]) == TestResult.SUCCESS
    assert agg([TestResult.SUCCESS, TestResult.FAILURE, TestResult.ERROR]) == TestResult.ERROR
    assert agg([TestResult.SUCCESS, TestResult.FAILURE]) == TestResult.FAILURE
    assert agg([TestResult.SUCCESS, TestResult.PENDING]) == TestResult.PENDING
    assert agg([TestResult.IGNORED, TestResult.IGNORED]) == TestResult.IGNORED
    assert agg([TestResult.IGNORED, TestResult.SUCCESS, TestResult.SKIPPED]) == TestResult.SUCCESS
    assert agg([TestResult.SKIPPED, TestResult.IGNORED]) == TestResult.SKIPPED
    assert agg([TestResult.UNDEFINED, TestResult.SKIPPED]) == TestResult.SKIPPED


def test_result_properties():
    assert TestResult.FAILURE.failed and TestResult.ERROR.failed
    assert not TestResult.SKIPPED.failed
    assert TestResult.SUCCESS.succeeded
    assert TestResult.UNDEFINED.undefined


#####################
# StepOutcome TESTS #
#####################

def test_step_finish_defaults():
    leaf = StepOutcome.begin("Given a customer")
    assert not leaf.finished
    assert leaf.finish().result == TestResult.SUCCESS
    assert leaf.finished
    assert leaf.duration_ms >= 0

    parent = StepOutcome.begin("Log in")
    parent.children.append(StepOutcome.begin("Given a user").finish(TestResult.FAILURE))
    assert parent.finish().result == TestResult.FAILURE


def test_step_finish_keeps_first_timestamp():
    st = StepOutcome.begin("Given a customer").finish()
    finished = st.finished_at
    st.finish(TestResult.SKIPPED)
    assert st.finished_at == finished
    assert st.result == TestResult.SKIPPED


def test_walk_is_depth_first():
    root = StepOutcome.begin("a")
    b = StepOutcome.begin("b")
    b.children.append(StepOutcome.begin("c"))
    root.children.extend([b, StepOutcome.begin("d")])
    assert [s.title for s in root.walk()] == ["a", "b", "c", "d"]


#####################
# TestOutcome TESTS #
#####################

def test_outcome_result_prefers_annotation():
    outcome = TestOutcome.begin("Buy a car", story=StoryRef(id="cars", title="Cars"))
    outcome.steps.append(StepOutcome.begin("Given a customer").finish(TestResult.FAILURE))
    assert outcome.result == TestResult.FAILURE
    outcome.annotated_result = TestResult.PENDING
    assert outcome.result == TestResult.PENDING
    assert outcome.id == "cars-buy-a-car"


def test_outcome_tags_and_issues_are_deduplicated():
    outcome = TestOutcome.begin("Buy a car")
    outcome.add_tags([TestTag(name="Sales", type="epic"), TestTag(name="Sales", type="epic")])
    outcome.add_issues(["BUG-1", "BUG-1", "BUG-2"])
    assert outcome.tags == [TestTag(name="Sales", type="epic")]
    assert outcome.issues == ["BUG-1", "BUG-2"]
    assert str(outcome.tags[0]) == "epic:Sales"


###################
# RunReport TESTS #
###################

def test_run_report_counts_and_dump(tmp_path: Path):
    ok = TestOutcome.begin("A")
    ok.steps.append(StepOutcome.begin("s").finish())
    skipped = TestOutcome.begin("B", story=StoryRef(id="cars", title="Cars"))
    skipped.annotated_result = TestResult.SKIPPED
    report = RunReport(label="nightly", outcomes=[ok.stamp_finished(), skipped.stamp_finished()])

    assert report.counts["success"] == 1
    assert report.counts["skipped"] == 1
    assert report.result == TestResult.SUCCESS
    assert report.outcomes_with(TestResult.SKIPPED) == [skipped]
    assert report.generated_at <= now_utc()

    out = tmp_path / "run.json"
    dump_report(out, report)
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["label"] == "nightly"
    assert data["counts"]["success"] == 1
    assert data["outcomes"][1]["result"] == "skipped"
    assert data["outcomes"][0]["steps"][0]["duration_ms"] is not None

    again = RunReport.model_validate(data)
    assert [o.result for o in again.outcomes] == [TestResult.SUCCESS, TestResult.SKIPPED]


def test_test_prefixed_models_are_not_collected_by_pytest():
    for cls in (TestResult, TestTag, TestOutcome):
        assert cls.__test__ is False
    assert "__test__" not in TestOutcome.model_fields
    assert TestTag(name="smoke", type="tag").model_dump() == {"name": "smoke", "type": "tag"}
