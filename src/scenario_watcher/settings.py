# settings.py
"""
Reporter settings and context management for scenario-watcher.

This module defines an immutable :class:`ReporterSettings` dataclass and a
small context-management layer that configures how the story reporter
manages the browser/driver session around scenarios and example rows, which
driver it requests, which exceptions count as violated assumptions, and where
reports are written. Settings are stored in a :class:`contextvars.ContextVar`,
so overrides are **per logical context** (safe for threads and nested calls).

The precedence model (highest → lowest) is:

1. Settings passed explicitly to a :class:`~scenario_watcher.reporter.StoryReporter`
2. Local overrides (:class:`use_settings`)
3. Process-wide defaults (:func:`set_global_settings`)
4. Module defaults

Examples
--------
Reading settings from the environment::

    import os
    from scenario_watcher.settings import ReporterSettings

    settings = ReporterSettings.from_properties(os.environ)

Temporarily disabling the per-scenario browser restart::

    with use_settings(restart_browser_each_scenario=False):
        reporter.before_scenario("Buy a car")
"""
from __future__ import annotations
import unittest
from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional, Tuple, Type

from .utilities import _as_bool


__all__ = [
    "ReporterSettings",
    "current_settings",
    "use_settings",
    "with_overrides",
    "set_global_settings",
]

#: Property keys understood by :meth:`ReporterSettings.from_properties`.
RESTART_BROWSER_EACH_SCENARIO = "restart.browser.each.scenario"
RESET_COOKIES_EACH_SCENARIO = "reset.cookies.each.scenario"
RESET_STEPS_EACH_SCENARIO = "reset.steps.each.scenario"
RESTART_BROWSER_FREQUENCY = "restart.browser.frequency"
USE_UNIQUE_BROWSER = "use.unique.browser"
DRIVER_TYPE = "driver.type"
WEBDRIVER_DRIVER = "webdriver.driver"
REPORT_DIRECTORY = "report.directory"


@dataclass(frozen=True)
class ReporterSettings:
    """
    Immutable settings controlling reporter behavior.

    Instances are intended to be **read-only** and layered via context
    overrides.

    Parameters
    ----------
    restart_browser_each_scenario : bool, default True
        Reset the driver before every scenario (and example row) except the
        first one of a story.
    reset_cookies_each_scenario : bool, default True
        Clear the browser session before every non-first scenario when no
        restart happened.
    reset_steps_each_scenario : bool, default True
        Run the step-context reset hook before every non-first scenario.
    restart_frequency : int, default 0
        Reset the driver every ``N`` example rows. ``0`` disables.
    unique_browser : bool, default False
        Ask the driver collaborator to share one browser across stories.
    driver_type : str or None, default None
        Driver requested when a story does not name one in its ``driver``
        metadata.
    environment_driver : str or None, default None
        Driver fixed by the environment (``webdriver.driver``). When set,
        per-story driver requests are ignored.
    assumption_exceptions : tuple of Exception types, default (unittest.SkipTest,)
        Root causes reported as violated assumptions instead of failures.
    report_directory : Path or None, default None
        Output directory for report services built by
        :meth:`~scenario_watcher.reporter.StoryReporter.default_report_services`.

    Notes
    -----
    - :class:`~scenario_watcher.reporter.AssumptionViolated` derives from
      :class:`unittest.SkipTest`, so it is covered by the default.
    - Prefer layering settings with :class:`use_settings` or
      :func:`with_overrides` rather than mutating state.
    """

    # Driver lifecycle
    restart_browser_each_scenario: bool = True
    reset_cookies_each_scenario: bool = True
    reset_steps_each_scenario: bool = True
    restart_frequency: int = 0
    unique_browser: bool = False

    # Driver selection
    driver_type: Optional[str] = None
    environment_driver: Optional[str] = None

    # Failure routing
    assumption_exceptions: Tuple[Type[BaseException], ...] = (unittest.SkipTest,)

    # Reporting
    report_directory: Optional[Path] = None

    def __post_init__(self):
        if self.restart_frequency < 0:
            raise ValueError(f"restart_frequency must be >= 0, not {self.restart_frequency}")

    @property
    def driver_from_environment(self) -> bool:
        """True if the environment pins the driver type."""
        return bool(self.environment_driver)

    def is_assumption(self, e: BaseException) -> bool:
        """True if ``e`` signals a violated assumption rather than a failure."""
        ax = self.assumption_exceptions
        return bool(ax) and isinstance(e, ax)

    def should_restart_for_row(self, row_count: int) -> bool:
        """
        Decide whether the driver restarts after ``row_count`` example rows.

        Restarts happen at integer multiples of :attr:`restart_frequency`;
        a frequency of ``0`` never restarts.
        """
        return self.restart_frequency > 0 and row_count % self.restart_frequency == 0

    @classmethod
    def from_properties(cls, properties: Mapping[str, str], **overrides) -> "ReporterSettings":
        """
        Build settings from string properties (e.g. ``os.environ``).

        Missing or empty properties keep their defaults. Keyword overrides
        win over properties.

        Raises
        ------
        ValueError
            If a flag or the restart frequency cannot be parsed.
        """
        defaults = cls()
        frequency = (properties.get(RESTART_BROWSER_FREQUENCY) or "").strip()
        report_directory = (properties.get(REPORT_DIRECTORY) or "").strip()
        values = dict(
            restart_browser_each_scenario=_as_bool(
                properties.get(RESTART_BROWSER_EACH_SCENARIO),
                defaults.restart_browser_each_scenario),
            reset_cookies_each_scenario=_as_bool(
                properties.get(RESET_COOKIES_EACH_SCENARIO),
                defaults.reset_cookies_each_scenario),
            reset_steps_each_scenario=_as_bool(
                properties.get(RESET_STEPS_EACH_SCENARIO),
                defaults.reset_steps_each_scenario),
            restart_frequency=int(frequency) if frequency else defaults.restart_frequency,
            unique_browser=_as_bool(properties.get(USE_UNIQUE_BROWSER), defaults.unique_browser),
            driver_type=properties.get(DRIVER_TYPE) or None,
            environment_driver=properties.get(WEBDRIVER_DRIVER) or None,
            report_directory=Path(report_directory) if report_directory else None,
        )
        values.update(overrides)
        return cls(**values)


#: Module-level default settings used when no overrides are active.
_default_settings = ReporterSettings()


#: Context-local settings for the current logical flow (thread safe).
_settings_var: ContextVar[ReporterSettings] = ContextVar("reporter_settings")


def current_settings() -> ReporterSettings:
    """
    Return the effective :class:`ReporterSettings` for the current context.

    Notes
    -----
    The value is resolved from the :class:`~contextvars.ContextVar` stack.
    If no overrides were applied, the module default is returned.

    Examples
    --------
    >>> from scenario_watcher.settings import current_settings
    >>> s = current_settings()
    >>> isinstance(s, ReporterSettings)
    True
    """
    return _settings_var.get(_default_settings)


class use_settings:
    """
    Context manager to apply temporary settings overrides.

    Keyword arguments correspond to fields on :class:`ReporterSettings` and
    replace the current context's settings immutably for the duration of
    the ``with`` block.

    Notes
    -----
    - Overrides are **stackable**; inner contexts take precedence.
    - On exit, the previous settings are restored.
    - This context manager never suppresses exceptions raised inside it.

    Examples
    --------
    ::

        with use_settings(restart_frequency=3) as eff:
            assert eff.should_restart_for_row(6)
    """

    def __init__(self, **overrides):
        self._overrides = overrides
        self._token: Optional[Token] = None
        self._effective: Optional[ReporterSettings] = None

    def __enter__(self) -> ReporterSettings:
        base = current_settings()

        # No-op reader path: return current settings without pushing a value
        if not self._overrides:
            self._effective = base
            self._token = None
            return base

        eff = replace(base, **self._overrides)
        self._effective = eff
        self._token = _settings_var.set(eff)
        return eff

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._token is not None:
            _settings_var.reset(self._token)
        # Never suppress exceptions
        return False


def with_overrides(base: ReporterSettings, **overrides) -> ReporterSettings:
    """
    Return a new :class:`ReporterSettings` with selected fields replaced.

    Examples
    --------
    ::

        quiet = with_overrides(current_settings(), restart_browser_each_scenario=False)
    """
    return replace(base, **overrides)


def set_global_settings(**overrides) -> ReporterSettings:
    """
    Permanently replace the process-wide default settings.

    Notes
    -----
    - Intended for top-level runner scripts.
    - Subsequent calls to :func:`current_settings` or :class:`use_settings`
      inherit from this new base, in every thread.
    - Not suitable for libraries.
    """
    global _default_settings
    new = replace(_default_settings, **overrides)
    _default_settings = new
    _settings_var.set(new)
    return new
