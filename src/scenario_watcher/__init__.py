from .core import (
    SCHEMA_VERSION,
    TestResult, TestTag, DataTable, StoryRef, StepOutcome, TestOutcome, RunReport,
)
from .model import (
    BEFORE_STORIES, AFTER_STORIES,
    Meta, Narrative, GivenStory, ExamplesTable, Scenario, Story,
)
from .metadata import MetadataFlags, MetadataResolver
from .lifecycle import (
    LifecycleContractError, GivenStoryMonitor, LifecycleStack, ExecutionContext, WorkerContexts,
)
from .overrides import ForcedOutcome, OutcomeOverrideEngine
from .sink import EventSink, OutcomeRecorder
from .driver import DriverSupport, NullDriverSupport, StoryDrivers
from .reports import ReportService, JsonReportService, HtmlReportService
from .reporter import AssumptionViolated, StoryReporter
from .settings import ReporterSettings, current_settings, use_settings, with_overrides, set_global_settings
from .io import atomic_write_json, dump_report
from .clocks import now_utc

__all__ = [
    "SCHEMA_VERSION",
    "TestResult", "TestTag", "DataTable", "StoryRef", "StepOutcome", "TestOutcome", "RunReport",
    "BEFORE_STORIES", "AFTER_STORIES",
    "Meta", "Narrative", "GivenStory", "ExamplesTable", "Scenario", "Story",
    "MetadataFlags", "MetadataResolver",
    "LifecycleContractError", "GivenStoryMonitor", "LifecycleStack", "ExecutionContext", "WorkerContexts",
    "ForcedOutcome", "OutcomeOverrideEngine",
    "EventSink", "OutcomeRecorder",
    "DriverSupport", "NullDriverSupport", "StoryDrivers",
    "ReportService", "JsonReportService", "HtmlReportService",
    "AssumptionViolated", "StoryReporter",
    "ReporterSettings", "current_settings", "use_settings", "with_overrides", "set_global_settings",
    "atomic_write_json", "dump_report", "now_utc",
]
