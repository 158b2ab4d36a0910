import threading

import pytest

from scenario_watcher.lifecycle import (
    ExecutionContext,
    GivenStoryMonitor,
    LifecycleContractError,
    LifecycleStack,
    ScenarioRegistry,
    WorkerContexts,
)
from scenario_watcher.model import EMPTY_META, Meta
from scenario_watcher.overrides import ForcedOutcome
from .helpers import make_scenario, make_story


#######################
# GivenStoryMonitor #
#######################

def test_monitor_counts_nested_given_stories():
    m = GivenStoryMonitor()
    assert not m.is_active()
    m.enter()
    m.enter()
    assert m.depth == 2
    m.exit()
    assert m.is_active()
    m.exit()
    assert not m.is_active()


def test_monitor_exit_is_floored_at_zero():
    m = GivenStoryMonitor()
    m.exit()
    assert m.depth == 0
    m.enter()
    assert m.depth == 1


def test_monitor_reset():
    m = GivenStoryMonitor()
    m.enter()
    m.reset()
    assert m.depth == 0


####################
# LifecycleStack #
####################

def test_story_stack_is_last_in_first_out():
    stack = LifecycleStack()
    outer, inner = make_story("outer.story"), make_story("inner.story")
    stack.push_story(outer)
    stack.push_story(inner)
    assert stack.current_story() is inner
    assert stack.pop_story() is inner
    assert stack.current_story() is outer
    assert stack.story_depth == 1


def test_empty_stacks_fail_loudly():
    stack = LifecycleStack()
    with pytest.raises(LifecycleContractError):
        stack.current_story()
    with pytest.raises(LifecycleContractError):
        stack.pop_story()
    with pytest.raises(LifecycleContractError):
        stack.current_scenario_title()
    with pytest.raises(LifecycleContractError):
        stack.pop_scenario()


def test_duplicate_scenario_push_is_rejected():
    stack = LifecycleStack()
    stack.push_scenario("Buy a car")
    assert stack.is_current_scenario("Buy a car")
    with pytest.raises(LifecycleContractError):
        stack.push_scenario("Buy a car")
    stack.push_scenario("Sell a car")
    assert stack.current_scenario_title() == "Sell a car"
    stack.clear_scenarios()
    assert stack.scenario_depth == 0


######################
# ScenarioRegistry #
######################

def test_registry_looks_up_meta_by_title():
    registry = ScenarioRegistry()
    registry.register(make_story(scenarios=[make_scenario("A", meta=Meta.of(skip=""))]))
    assert registry.meta_for("A").has_property("skip")
    assert registry.meta_for("unknown") is EMPTY_META


def test_registry_marks_titles_processed_once():
    registry = ScenarioRegistry()
    assert registry.mark_processed("A")
    assert not registry.mark_processed("A")
    assert registry.is_processed("A")
    registry.clear()
    assert not registry.is_processed("A")


######################
# ExecutionContext #
######################

def test_context_defaults():
    ctx = ExecutionContext()
    assert ctx.forced_scenario_result is ForcedOutcome.UNDETERMINED
    assert not ctx.nest_scenarios
    assert ctx.example_count == 0
    assert ctx.sink is None


def test_story_level_given_names_match_case_insensitively():
    ctx = ExecutionContext()
    ctx.given_story_names.append("Login.story")
    login = make_story("login.story")
    assert ctx.is_story_level_given(login)
    assert not ctx.is_story_level_given(make_story("checkout.story"))


def test_given_story_done_releases_the_name():
    ctx = ExecutionContext()
    ctx.given_story_names.append("login.story")
    ctx.given_story_done(make_story("login.story"))
    assert ctx.given_story_names == []


def test_clear_scenario_result():
    ctx = ExecutionContext(forced_scenario_result=ForcedOutcome.SKIPPED)
    ctx.clear_scenario_result()
    assert ctx.forced_scenario_result is ForcedOutcome.UNDETERMINED


####################
# WorkerContexts #
####################

def test_each_worker_gets_its_own_context():
    contexts = WorkerContexts()
    main = contexts.current()
    assert contexts.current() is main

    seen = {}

    def worker():
        seen["ctx"] = contexts.current()

    t = threading.Thread(target=worker)
    t.start()
    t.join()
    assert seen["ctx"] is not main
    assert len(contexts) == 2


def test_released_context_is_recreated_on_next_use():
    key = ["a"]
    contexts = WorkerContexts(worker_key=lambda: key[0])
    first = contexts.current()
    assert contexts.release() is first
    assert len(contexts) == 0
    assert contexts.current() is not first
    assert contexts.release() is not None
    assert contexts.release() is None
