#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List

from .core import RunReport, StepOutcome


# ------------------------
# Loading
# ------------------------

def load_run_report(path: Path | str) -> RunReport:
    """Load a ``RunReport`` JSON file written by the JSON report service."""
    text = Path(path).read_text(encoding="utf-8")
    data = json.loads(text)
    return RunReport.model_validate(data)


# ------------------------
# Counting
# ------------------------

def count_tests_and_steps(report: RunReport) -> tuple[int, int]:
    num_tests = len(report.outcomes)
    num_steps = sum(1 for o in report.outcomes for _ in o.iter_steps())
    return num_tests, num_steps


# ------------------------
# Row building helpers
# ------------------------

# Each row is a dict; possible keys:
#   type, story, test, title, result, ms, tags, issues

def _result_str(obj: Any) -> str:
    result = getattr(obj, "result", None)
    if hasattr(result, "name"):
        return result.name
    return str(result) if result is not None else ""


def _duration_ms_str(obj: Any) -> str:
    dur = getattr(obj, "duration_ms", None)
    return f"{dur:.0f}" if dur is not None else ""


def _step_rows(steps: List[StepOutcome], story: str, test: str, depth: int) -> List[Dict[str, str]]:
    rows: List[Dict[str, str]] = []
    for st in steps:
        rows.append({
            "type": "step",
            "story": story,
            "test": test,
            "title": "  " * depth + st.title,
            "result": _result_str(st),
            "ms": _duration_ms_str(st),
            "tags": "",
            "issues": "",
        })
        rows.extend(_step_rows(st.children, story, test, depth + 1))
    return rows


def build_rows(report: RunReport, with_steps: bool = True) -> List[Dict[str, str]]:
    """
    Build a list of dict rows, one per test followed by its steps.

    Keys:
      - type:     test | step
      - story:    story title
      - test:     test title
      - title:    test or step title (steps indented by depth)
      - result:   TestResult name
      - ms:       duration in milliseconds (string)
      - tags:     comma-separated ``type:name`` tags (tests only)
      - issues:   comma-separated issue keys (tests only)
    """
    rows: List[Dict[str, str]] = []
    for o in report.outcomes:
        story = o.story.title if o.story else ""
        title = o.title + (" (manual)" if o.manual else "")
        rows.append({
            "type": "test",
            "story": story,
            "test": o.title,
            "title": title,
            "result": _result_str(o),
            "ms": _duration_ms_str(o),
            "tags": ", ".join(str(t) for t in o.tags),
            "issues": ", ".join(o.issues),
        })
        if with_steps:
            rows.extend(_step_rows(o.steps, story, o.title, 1))
    return rows


# ------------------------
# Tracebacks
# ------------------------

def collect_tracebacks(report: RunReport) -> List[tuple[str, str, str]]:
    """Collect (test, step, traceback_text) for every failed step."""
    tbs: List[tuple[str, str, str]] = []
    for o in report.outcomes:
        for st in o.iter_steps():
            tb = st.metadata.get("traceback")
            if tb:
                tbs.append((o.title, st.title, str(tb)))
    return tbs


# ------------------------
# Printing
# ------------------------

def print_summary(report: RunReport) -> None:
    total_tests, total_steps = count_tests_and_steps(report)

    print(f"{report.label} result: {_result_str(report)}")
    print(f"Total number of tests: {total_tests}")
    print(f"Total number of steps: {total_steps}")
    counts = ", ".join(f"{name}={n}" for name, n in report.counts.items() if n)
    if counts:
        print(f"Results: {counts}")
    print()


# Map column keys → human-friendly header labels
COLUMN_HEADERS = {
    "type": "Type",
    "story": "Story",
    "test": "Test",
    "title": "Title",
    "result": "Result",
    "ms": "ms",
    "tags": "Tags",
    "issues": "Issues",
}


def print_table(rows: List[Dict[str, str]], cols_to_show: List[str]) -> None:
    if not rows:
        print("No tests recorded.")
        print()
        return

    cols = [c for c in cols_to_show if c in COLUMN_HEADERS]
    if not cols:
        print("No columns selected to display (cols_to_show was empty).")
        print()
        return

    projected_rows = [
        {k: (row.get(k, "") or "") for k in cols}
        for row in rows
    ]

    headers = [COLUMN_HEADERS[k] for k in cols]
    all_rows_for_width = [headers] + [
        [r[k] for k in cols] for r in projected_rows
    ]

    col_widths = [
        max(len(str(row[i])) for row in all_rows_for_width)
        for i in range(len(cols))
    ]

    def fmt_vals(values: List[str]) -> str:
        return "  ".join(
            str(values[i]).ljust(col_widths[i])
            for i in range(len(cols))
        ).rstrip()

    print(fmt_vals(headers))
    print("  ".join("-" * w for w in col_widths))
    for r in projected_rows:
        print(fmt_vals([r[k] for k in cols]))
    print()


def print_tracebacks(tracebacks: List[tuple[str, str, str]]) -> None:
    if not tracebacks:
        return

    print("Tracebacks:")
    print()
    for test, step, tb in tracebacks:
        print(f"[{test} :: {step}]")
        print(tb.rstrip())
        print()


# ------------------------
# CLI entrypoint
# ------------------------

def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Summarize a scenario-watcher outcomes JSON file."
    )
    parser.add_argument(
        "path",
        type=Path,
        help="Path to the outcomes.json written by the JSON report service.",
    )

    # Column toggles
    parser.add_argument("--show-type", action="store_true", help="Show the row type (test/step).")
    parser.add_argument("--show-story", action="store_true", help="Show the story title.")
    parser.add_argument("--show-test", action="store_true", help="Show the owning test title.")
    parser.add_argument("--show-title", action="store_true", help="Show the test or step title.")
    parser.add_argument("--show-result", action="store_true", help="Show the result (SUCCESS/FAILURE/...).")
    parser.add_argument("--show-ms", action="store_true", help="Show duration in milliseconds.")
    parser.add_argument("--show-tags", action="store_true", help="Show test tags.")
    parser.add_argument("--show-issues", action="store_true", help="Show test issues.")
    parser.add_argument("--tests-only", action="store_true", help="Leave steps out of the table.")

    args = parser.parse_args(argv)

    report = load_run_report(args.path)
    print_summary(report)

    flag_to_col = {
        "show_type": "type",
        "show_story": "story",
        "show_test": "test",
        "show_title": "title",
        "show_result": "result",
        "show_ms": "ms",
        "show_tags": "tags",
        "show_issues": "issues",
    }

    selected_cols = [
        col for attr, col in flag_to_col.items()
        if getattr(args, attr)
    ]

    if not selected_cols:
        selected_cols = ["type", "story", "title", "result"]

    rows = build_rows(report, with_steps=not args.tests_only)
    print_table(rows, selected_cols)

    print_tracebacks(collect_tracebacks(report))


if __name__ == "__main__":
    main()
