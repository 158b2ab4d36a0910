"""Story reporter: turns raw story-runner callbacks into normalized events.

:class:`StoryReporter` is what the host test runtime calls, in order, as it
executes stories, scenarios, example rows and steps. It keeps the lifecycle
state of each worker in a :class:`~scenario_watcher.lifecycle.ExecutionContext`,
decides whether a scenario is reported as a test of its own or as a step of an
enclosing scenario (given stories), applies metadata-forced outcomes, keeps the
driver session in step with scenarios, and forwards everything to the
worker's :class:`~scenario_watcher.sink.EventSink`.

Examples
--------
::

    reporter = StoryReporter(settings=ReporterSettings(report_directory=Path("out")))
    reporter.before_story(story)
    reporter.before_scenario("Buy a car")
    reporter.before_step("Given a customer")
    reporter.successful("Given a customer")
    reporter.after_scenario()
    reporter.after_story()
"""
from __future__ import annotations
import logging
import threading
import unittest
from typing import Callable, Collection, Hashable, List, Mapping, Sequence

from .core import StoryRef, TestOutcome, TestResult
from .driver import DriverSupport, NullDriverSupport, StoryDrivers
from .lifecycle import ExecutionContext, WorkerContexts, _current_worker
from .metadata import MetadataResolver
from .model import AFTER_STORIES, BEFORE_STORIES, ExamplesTable, GivenStory, Meta, Narrative, Scenario, Story
from .overrides import ForcedOutcome, OutcomeOverrideEngine
from .reports import HtmlReportService, JsonReportService, ReportService
from .settings import ReporterSettings, current_settings
from .sink import EventSink, OutcomeRecorder
from .utilities import humanize, normalized_title, remove_suffix


logger = logging.getLogger(__name__)

PRECONDITIONS_STEP = "Preconditions"
DRIVER_PROPERTY = "driver"


class AssumptionViolated(unittest.SkipTest):
    """A step found that a precondition of its scenario does not hold.

    Reported as a skipped scenario rather than a failure.
    """


class StoryReporter:
    """Lifecycle dispatcher for story runs.

    One instance serves every worker of a run; per-worker state lives in
    execution contexts keyed by ``worker_key`` (the thread id by default).

    Parameters
    ----------
    settings : ReporterSettings, optional
        Fixed settings. When omitted, :func:`~scenario_watcher.settings.current_settings`
        is read at every decision.
    driver_support : DriverSupport, optional
        Browser/session collaborator. Defaults to :class:`NullDriverSupport`.
    sink_factory : callable, optional
        Builds the event sink of a worker. Defaults to :class:`OutcomeRecorder`.
    report_services : sequence of ReportService, optional
        Services run when the ``AfterStories`` fixture ends. When omitted they
        are derived from ``settings.report_directory``.
    reset_step_context : callable, optional
        Hook resetting step-library state before a story and before each
        non-first scenario.
    engine : OutcomeOverrideEngine, optional
        Outcome rules; the default uses a plain :class:`MetadataResolver`.
    worker_key : callable, optional
        Returns the key identifying the calling worker.
    """

    def __init__(
        self,
        settings: ReporterSettings | None = None,
        driver_support: DriverSupport | None = None,
        sink_factory: Callable[[], EventSink] = OutcomeRecorder,
        report_services: Sequence[ReportService] | None = None,
        reset_step_context: Callable[[], None] | None = None,
        engine: OutcomeOverrideEngine | None = None,
        worker_key: Callable[[], Hashable] = _current_worker,
    ):
        self._settings = settings
        self.driver_support = driver_support or NullDriverSupport()
        self.sink_factory = sink_factory
        self._report_services = list(report_services) if report_services is not None else None
        self._reset_step_context = reset_step_context
        self.engine = engine or OutcomeOverrideEngine()
        self.contexts = WorkerContexts(worker_key)
        self.drivers = StoryDrivers()
        self._sinks: List[EventSink] = []
        self._sinks_lock = threading.Lock()
        self._reports_lock = threading.Lock()

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    @property
    def settings(self) -> ReporterSettings:
        return self._settings if self._settings is not None else current_settings()

    @property
    def resolver(self) -> MetadataResolver:
        return self.engine.resolver

    @property
    def context(self) -> ExecutionContext:
        """Execution context of the calling worker."""
        return self.contexts.current()

    def sink(self) -> EventSink:
        """Event sink of the calling worker, created on first use."""
        return self._sink_for(self.context)

    def _sink_for(self, ctx: ExecutionContext) -> EventSink:
        if ctx.sink is None:
            ctx.sink = self.sink_factory()
            with self._sinks_lock:
                self._sinks.append(ctx.sink)
        return ctx.sink

    def release_worker(self) -> None:
        """Tear down the calling worker's execution context.

        Outcomes already recorded stay available to report generation.
        """
        self.contexts.release()

    def get_all_test_outcomes(self) -> List[TestOutcome]:
        """Outcomes recorded by every worker so far."""
        with self._sinks_lock:
            sinks = list(self._sinks)
        return [outcome for sink in sinks for outcome in sink.test_outcomes]

    def default_report_services(self) -> List[ReportService]:
        directory = self.settings.report_directory
        if directory is None:
            return []
        return [JsonReportService(directory), HtmlReportService(directory)]

    @property
    def report_services(self) -> List[ReportService]:
        if self._report_services is not None:
            return self._report_services
        return self.default_report_services()

    def generate_reports(self) -> None:
        with self._reports_lock:
            outcomes = self.get_all_test_outcomes()
            services = self.report_services
            logger.debug("generating reports for %d outcomes with %d services",
                         len(outcomes), len(services))
            for service in services:
                service.generate_reports_for(outcomes)

    # ------------------------------------------------------------------
    # stories
    # ------------------------------------------------------------------

    def story_not_allowed(self, story: Story, filter_expr: str = "") -> None:
        logger.debug("not allowed story %s", story.name)

    def story_cancelled(self, story: Story, duration=None) -> None:
        logger.debug("cancelled story %s", story.name)

    def before_story(self, story: Story, given_story: bool = False) -> None:
        logger.debug("before story %s", story.name)
        ctx = self.context
        ctx.stack.push_story(story)
        ctx.given_story_names.extend(given.name for given in story.given_stories)
        ctx.story_metadata = story.meta.as_dict()

        if not story.is_fixture and not given_story:
            ctx.clear_active_scenarios()
            ctx.scenarios.register(story)
            self._configure_driver(story)
            self._reset_steps()
            self._sink_for(ctx)
            if not ctx.is_story_level_given(story):
                self._start_suite(ctx, story)
                if story.has_given_stories and story.scenarios:
                    self._start_test_for_first_scenario(ctx, story)
            ctx.running_first_scenario = True
        elif given_story:
            ctx.nest_scenarios = True

        if self.engine.suspends_story(story.meta):
            self._sink_for(ctx).suspend_test()

    def after_story(self, given: bool = False) -> None:
        logger.debug("after story (given=%s)", given)
        ctx = self.context
        ctx.nest_scenarios = False
        story = ctx.stack.current_story()
        if given:
            ctx.given_stories.exit()
            ctx.given_story_done(story)
        else:
            self.drivers.close_for(story)
            if story.is_after_stories:
                self.generate_reports()
            elif not story.is_fixture and not ctx.is_story_level_given(story):
                self._sink_for(ctx).test_suite_finished()
                ctx.sink = None
                ctx.given_stories.reset()
        ctx.stack.pop_story()

    def given_stories(self, stories: Sequence[GivenStory] = ()) -> None:
        """Given stories of the running scenario are about to execute."""
        logger.debug("given stories %s", [given.path for given in stories])
        self.context.given_stories.enter()

    def given_story_paths(self, paths: Sequence[str]) -> None:
        logger.debug("given story paths %s", list(paths))

    def narrative(self, narrative: Narrative) -> None:
        logger.debug("narrative %s", narrative.as_text())

    def lifecycle(self, lifecycle) -> None:
        logger.debug("lifecycle %s", lifecycle)

    def _start_suite(self, ctx: ExecutionContext, story: Story) -> None:
        story_id = remove_suffix(story.name)
        ref = StoryRef(
            id=story_id,
            title=story.description or humanize(story_id),
            path=story.path,
            narrative="" if story.narrative.is_empty else story.narrative.as_text(),
        )
        sink = self._sink_for(ctx)
        sink.test_suite_started(ref)
        issues = self.resolver.issues(story.meta)
        if issues:
            sink.add_issues_to_current_story(issues)
        tags = self.resolver.features_and_epics(story.meta) + self.resolver.free_form_tags(story.meta)
        if tags:
            sink.add_tags_to_current_story(tags)

    def _start_test_for_first_scenario(self, ctx: ExecutionContext, story: Story) -> None:
        self._start_scenario(ctx, story.scenarios[0].title)
        self._sink_for(ctx).step_started(PRECONDITIONS_STEP)
        ctx.nest_scenarios = True

    # ------------------------------------------------------------------
    # scenarios
    # ------------------------------------------------------------------

    def before_scenario(self, title: str) -> None:
        """Start a scenario.

        A begin for the scenario that is already open is a no-op re-entry (it
        happens when the scenario was opened early to hold given-story
        preconditions). While scenarios are nested the scenario becomes a step
        of the enclosing one; otherwise it starts a test of its own.
        """
        logger.debug("before scenario %s", title)
        ctx = self.context
        ctx.clear_scenario_result()
        self._restart_browser_if_necessary(ctx)
        if self.settings.reset_steps_each_scenario and not ctx.running_first_scenario:
            self._reset_steps()

        if ctx.stack.is_current_scenario(title):
            return

        if ctx.nest_scenarios:
            self._start_nested_step(ctx, title)
        else:
            self._start_scenario(ctx, title)
            self.scenario_meta(ctx.scenarios.meta_for(title))

    def scenario_meta(self, meta: Meta) -> None:
        """Register the running scenario's metadata and apply forced outcomes."""
        ctx = self.context
        title = ctx.stack.current_scenario_title()
        logger.debug("scenario %r registering metadata %s", title, meta.as_dict())
        sink = self._sink_for(ctx)
        story_meta = ctx.stack.current_story().meta

        if ctx.scenarios.mark_processed(title):
            issues = self.resolver.issues(meta)
            if issues:
                sink.add_issues_to_current_test(issues)
            tags = self.resolver.features_and_epics(meta) + self.resolver.free_form_tags(meta)
            if tags:
                sink.add_tags_to_current_test(tags)

        metadata = meta.as_dict()
        metadata.update(ctx.story_metadata)
        sink.set_metadata(metadata)

        verdict = self.engine.evaluate_scenario(meta, story_meta)
        if verdict.manual:
            sink.test_is_manual()
            sink.suspend_test()
        if verdict.outcome.determined:
            ctx.forced_scenario_result = verdict.outcome

        effective = self.engine.effective(story_meta, ctx.forced_scenario_result)
        if effective is ForcedOutcome.PENDING:
            sink.test_pending()
        elif effective is ForcedOutcome.SKIPPED:
            sink.test_skipped()

    def after_scenario(self) -> None:
        ctx = self.context
        title = ctx.stack.current_scenario_title()
        logger.debug("after scenario %s", title)
        self.scenario_meta(ctx.scenarios.meta_for(title))
        sink = self._sink_for(ctx)

        if ctx.given_stories.is_active() or ctx.nest_scenarios:
            sink.step_finished()
            return

        effective = self.engine.effective(ctx.stack.current_story().meta, ctx.forced_scenario_result)
        if effective is ForcedOutcome.PENDING:
            sink.set_all_steps_to(TestResult.PENDING)
            sink.test_pending()
        elif effective is ForcedOutcome.SKIPPED:
            sink.set_all_steps_to(TestResult.SKIPPED)
            sink.test_skipped()
        elif effective is ForcedOutcome.IGNORED:
            sink.test_ignored()
            sink.set_all_steps_to(TestResult.IGNORED)
        sink.test_finished()
        ctx.running_first_scenario = False
        ctx.stack.pop_scenario()

    def scenario_not_allowed(self, scenario: Scenario, filter_expr: str = "") -> None:
        logger.debug("scenario not allowed %s", scenario.title)
        self.sink().test_ignored()

    def _start_scenario(self, ctx: ExecutionContext, title: str) -> None:
        self._sink_for(ctx).test_started(title)
        ctx.stack.push_scenario(title)

    def _start_nested_step(self, ctx: ExecutionContext, title: str) -> None:
        sink = self._sink_for(ctx)
        if ctx.given_stories.is_active() and sink.are_steps_running():
            sink.update_current_step_title(title)
        else:
            sink.step_started(title)

    # ------------------------------------------------------------------
    # examples
    # ------------------------------------------------------------------

    def before_examples(self, steps: Sequence[str], table: ExamplesTable) -> None:
        logger.debug("before examples %s (%d rows)", list(steps), len(table.rows))
        ctx = self.context
        ctx.example_count = 0
        self._sink_for(ctx).use_examples_from(table)

    def example(self, row: Mapping[str, str]) -> None:
        logger.debug("example %s", dict(row))
        ctx = self.context
        settings = self.settings
        if (self._story_is_executable(ctx)
                and settings.restart_browser_each_scenario
                and not ctx.running_first_scenario):
            self._reset_driver()

        sink = self._sink_for(ctx)
        sink.clear_step_failures()
        if ctx.example_count > 0:
            sink.example_finished()
        ctx.example_count += 1
        if settings.should_restart_for_row(ctx.example_count):
            self._reset_driver()
        sink.example_started(row)

    def after_examples(self) -> None:
        logger.debug("after examples")
        self.sink().example_finished()

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------

    def before_step(self, title: str) -> None:
        logger.debug("before step %s", title)
        self.sink().step_started(normalized_title(title))

    def successful(self, title: str) -> None:
        """A step passed, unless the running test carries a forced result."""
        logger.debug("successful %s", title)
        sink = self.sink()
        forced = sink.forced_result
        if forced is not None:
            if forced is TestResult.PENDING:
                sink.step_pending()
            else:
                sink.step_ignored()
            return
        sink.update_current_step_title(normalized_title(title))
        sink.step_finished()

    def ignorable(self, title: str) -> None:
        logger.debug("ignorable %s", title)
        sink = self.sink()
        sink.update_current_step_title(normalized_title(title))
        sink.step_ignored()

    def pending(self, title: str) -> None:
        logger.debug("pending %s", title)
        sink = self.sink()
        sink.step_started(normalized_title(title))
        sink.step_pending()

    def not_performed(self, title: str) -> None:
        logger.debug("not performed %s", title)
        sink = self.sink()
        sink.step_started(normalized_title(title))
        sink.step_ignored()

    def failed(self, title: str, cause: BaseException) -> None:
        """A step raised ``cause``.

        One level of wrapping is removed (``raise ... from``). Root causes
        listed in ``settings.assumption_exceptions`` are reported as violated
        assumptions, anything else as a step failure.
        """
        logger.debug("failed %s", title)
        root = cause.__cause__ if cause.__cause__ is not None else cause
        sink = self.sink()
        sink.update_current_step_title(title)
        if self.settings.is_assumption(root):
            sink.assumption_violated(str(root))
        else:
            sink.step_failed(normalized_title(title), root)

    # ------------------------------------------------------------------
    # notifications
    # ------------------------------------------------------------------

    def failed_outcomes(self, step: str, outcomes=None) -> None:
        logger.debug("failed outcomes %s", step)

    def restarted(self, step: str, cause: BaseException | None = None) -> None:
        logger.debug("restarted %s", step)

    def restarted_story(self, story: Story, cause: BaseException | None = None) -> None:
        logger.debug("restarted story %s", story.name)

    def dry_run(self) -> None:
        logger.debug("dry run")

    def pending_methods(self, methods: Sequence[str]) -> None:
        logger.debug("pending methods %s", list(methods))

    # ------------------------------------------------------------------
    # driver lifecycle
    # ------------------------------------------------------------------

    def _story_is_executable(self, ctx: ExecutionContext) -> bool:
        return self.resolver.is_candidate_to_be_executed(ctx.stack.current_story().meta)

    def _configure_driver(self, story: Story) -> None:
        settings = self.settings
        support = self.driver_support
        requested = story.meta.get_property(DRIVER_PROPERTY) or settings.driver_type
        try:
            support.use_unique_session(settings.unique_browser)
            if requested and not settings.driver_from_environment:
                support.initialize(requested)
                self.drivers.register(story, support.get_driver())
            else:
                support.initialize()
        except Exception:
            logger.warning("driver initialisation failed for story %s; requesting a fresh session",
                           story.name, exc_info=True)
            self._reset_driver()

    def _restart_browser_if_necessary(self, ctx: ExecutionContext) -> None:
        if not self._story_is_executable(ctx):
            return

        if self._managed_driver_is_not_alive():
            self._reset_driver()
            return

        story = ctx.stack.current_story()
        settings = self.settings
        story_level_given = ctx.is_story_level_given(story)
        if (settings.restart_browser_each_scenario
                and not ctx.nest_scenarios
                and not story_level_given
                and not ctx.running_first_scenario):
            self._reset_driver()
            return

        if (settings.reset_cookies_each_scenario
                and not story_level_given
                and not ctx.running_first_scenario):
            try:
                self.driver_support.clear_session()
            except Exception:
                logger.warning("could not clear the browser session; requesting a fresh one",
                               exc_info=True)
                self._reset_driver()

    def _managed_driver_is_not_alive(self) -> bool:
        support = self.driver_support
        try:
            driver = support.get_driver()
            if driver is None or not support.is_instantiated():
                return False
            support.ping(driver)
        except Exception:
            logger.warning("driver liveness probe failed; treating the driver as dead", exc_info=True)
            return True
        return False

    def _reset_driver(self) -> None:
        try:
            self.driver_support.reset_driver(self.driver_support.get_driver())
        except Exception:
            logger.warning("driver reset failed", exc_info=True)

    def _reset_steps(self) -> None:
        if self._reset_step_context is not None:
            self._reset_step_context()

    # ------------------------------------------------------------------
    # filter replay
    # ------------------------------------------------------------------

    def process_excluded_by_filter(self, story: Story, exclude: Collection[str] = ()) -> List[str]:
        """Report scenarios that a story filter kept from running.

        Scenarios flagged ``skip``/``wip``/``ignore`` (every scenario, when the
        story itself carries one of those flags) are replayed as passing
        steps, wrapped in synthetic ``BeforeStories``/``AfterStories`` fixtures,
        so that they still appear in the reports with their forced outcome.
        Scenarios whose key (``story.path + title``) is in ``exclude`` are left
        out.

        Returns
        -------
        list[str]
            Keys of the scenarios actually replayed, in story order.
        """
        story_flags = self.resolver.resolve(story.meta)
        if story_flags.is_skipped or story_flags.is_ignored:
            processing = list(story.scenarios)
        else:
            processing = []
            for scenario in story.scenarios:
                flags = self.resolver.resolve(scenario.meta)
                if flags.is_skipped or flags.is_ignored:
                    processing.append(scenario)

        processed: List[str] = []
        if not processing:
            return processed

        self.before_story(Story.fixture(BEFORE_STORIES))
        self.after_story()
        self.before_story(story)
        self.narrative(story.narrative)
        for scenario in processing:
            key = story.scenario_key(scenario)
            if key in exclude:
                continue
            self.before_scenario(scenario.title)
            self.scenario_meta(scenario.meta)
            if scenario.examples.is_empty:
                self._replay_steps(scenario.steps)
            else:
                self.before_examples(scenario.steps, scenario.examples)
                for row in scenario.examples.rows:
                    self.example(row)
                    self._replay_steps(scenario.steps)
                self.after_examples()
            self.after_scenario()
            processed.append(key)
        self.after_story()
        self.before_story(Story.fixture(AFTER_STORIES))
        self.after_story()
        return processed

    def _replay_steps(self, steps: Sequence[str]) -> None:
        for step in steps:
            self.before_step(step)
            self.successful(step)
