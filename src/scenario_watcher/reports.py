"""Report services run once all stories have finished.

A report service receives every :class:`~scenario_watcher.core.TestOutcome`
collected from every worker. Two services ship with the package:

- :class:`JsonReportService` writes the run as ``outcomes.json``.
- :class:`HtmlReportService` renders ``index.html`` with Jinja2.
"""
from __future__ import annotations
import logging
from pathlib import Path
from typing import List, Protocol, Sequence

from jinja2 import Environment, PackageLoader, select_autoescape

from .core import RunReport, TestOutcome, TestResult
from .io import atomic_write_text, dump_report


logger = logging.getLogger(__name__)

JSON_REPORT_NAME = "outcomes.json"
HTML_REPORT_NAME = "index.html"


class ReportService(Protocol):
    def generate_reports_for(self, outcomes: Sequence[TestOutcome]) -> None: ...


def build_run_report(outcomes: Sequence[TestOutcome], label: str = "Scenario run") -> RunReport:
    return RunReport(label=label, outcomes=list(outcomes))


class JsonReportService:
    """Write all outcomes as a :class:`~scenario_watcher.core.RunReport` JSON file."""

    def __init__(self, directory: Path, label: str = "Scenario run"):
        self.directory = Path(directory)
        self.label = label

    @property
    def path(self) -> Path:
        return self.directory / JSON_REPORT_NAME

    def generate_reports_for(self, outcomes: Sequence[TestOutcome]) -> None:
        report = build_run_report(outcomes, self.label)
        dump_report(self.path, report)
        logger.info("wrote %d outcomes to %s", len(report.outcomes), self.path)


class HtmlReportService:
    """Render all outcomes to a single HTML page.

    The template is loaded from the package's ``templates`` directory unless
    an environment is supplied.
    """

    template_name = "report.html.j2"

    def __init__(self, directory: Path, label: str = "Scenario run", env: Environment | None = None):
        self.directory = Path(directory)
        self.label = label
        self.env = env or Environment(
            loader=PackageLoader("scenario_watcher", "templates"),
            autoescape=select_autoescape(["html", "xml", "j2"]),
        )

    @property
    def path(self) -> Path:
        return self.directory / HTML_REPORT_NAME

    def render(self, outcomes: Sequence[TestOutcome]) -> str:
        report = build_run_report(outcomes, self.label)
        tpl = self.env.get_template(self.template_name)
        return tpl.render(title=self.label, report=report, failed=_failed_outcomes(report))

    def generate_reports_for(self, outcomes: Sequence[TestOutcome]) -> None:
        atomic_write_text(self.path, self.render(outcomes))
        logger.info("wrote HTML report to %s", self.path)


def _failed_outcomes(report: RunReport) -> List[TestOutcome]:
    return [o for o in report.outcomes if o.result in (TestResult.FAILURE, TestResult.ERROR)]
