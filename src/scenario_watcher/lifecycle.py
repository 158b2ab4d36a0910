"""Per-worker lifecycle state of the story reporter.

The reporter is driven by a test runtime that may run stories on several
worker threads at once. Everything that describes "where execution currently
is" lives in one :class:`ExecutionContext` per worker: the open stories and
scenarios (:class:`LifecycleStack`), the given-story depth
(:class:`GivenStoryMonitor`), the scenario metadata registry of the running
story, the forced scenario result and the example-row counter.
:class:`WorkerContexts` creates these contexts on first use and tears them
down explicitly.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Hashable, List, Optional, Set

from .model import EMPTY_META, Meta, Story
from .overrides import ForcedOutcome

if TYPE_CHECKING:
    from .sink import EventSink


logger = logging.getLogger(__name__)


class LifecycleContractError(RuntimeError):
    """The calling runtime broke the begin/end nesting of lifecycle events.

    Raised on a pop or peek of an empty stack and on a duplicate scenario
    push. Reporting state is unreliable after this error, so it is never
    caught inside the package.
    """


class GivenStoryMonitor:
    """Depth counter for given stories being executed.

    Examples
    --------
    >>> monitor = GivenStoryMonitor()
    >>> monitor.enter(); monitor.is_active()
    True
    >>> monitor.exit(); monitor.exit(); monitor.depth
    0
    """

    def __init__(self):
        self._depth = 0

    @property
    def depth(self) -> int:
        return self._depth

    def enter(self) -> None:
        self._depth += 1

    def exit(self) -> None:
        if self._depth == 0:
            logger.warning("given story exit without a matching enter; depth stays at 0")
            return
        self._depth -= 1

    def is_active(self) -> bool:
        return self._depth > 0

    def reset(self) -> None:
        self._depth = 0


class LifecycleStack:
    """Open stories and open scenario titles, innermost last."""

    def __init__(self):
        self._stories: List[Story] = []
        self._scenarios: List[str] = []

    # stories

    def push_story(self, story: Story) -> None:
        self._stories.append(story)

    def pop_story(self) -> Story:
        if not self._stories:
            raise LifecycleContractError("story ended while no story is open")
        return self._stories.pop()

    def current_story(self) -> Story:
        if not self._stories:
            raise LifecycleContractError("no story is open")
        return self._stories[-1]

    @property
    def story_depth(self) -> int:
        return len(self._stories)

    # scenarios

    def push_scenario(self, title: str) -> None:
        if self.is_current_scenario(title):
            raise LifecycleContractError(f"scenario {title!r} is already the open scenario")
        self._scenarios.append(title)

    def pop_scenario(self) -> str:
        if not self._scenarios:
            raise LifecycleContractError("scenario ended while no scenario is open")
        return self._scenarios.pop()

    def current_scenario_title(self) -> str:
        if not self._scenarios:
            raise LifecycleContractError("no scenario is open")
        return self._scenarios[-1]

    def is_current_scenario(self, title: str) -> bool:
        return bool(self._scenarios) and self._scenarios[-1] == title

    def clear_scenarios(self) -> None:
        self._scenarios.clear()

    @property
    def scenario_depth(self) -> int:
        return len(self._scenarios)


class ScenarioRegistry:
    """Scenario metadata of the running story, looked up by title.

    Tag registration for a title happens once per story; :meth:`mark_processed`
    reports whether this is the first time.
    """

    def __init__(self):
        self._meta: Dict[str, Meta] = {}
        self._processed: Set[str] = set()

    def register(self, story: Story) -> None:
        for scenario in story.scenarios:
            self._meta[scenario.title] = scenario.meta

    def meta_for(self, title: str) -> Meta:
        return self._meta.get(title, EMPTY_META)

    def mark_processed(self, title: str) -> bool:
        if title in self._processed:
            return False
        self._processed.add(title)
        return True

    def is_processed(self, title: str) -> bool:
        return title in self._processed

    def clear(self) -> None:
        self._meta.clear()
        self._processed.clear()


@dataclass
class ExecutionContext:
    """Lifecycle state owned by one worker.

    Attributes
    ----------
    stack : LifecycleStack
        Open stories and scenarios.
    given_stories : GivenStoryMonitor
        Given-story depth.
    given_story_names : list[str]
        Names of given stories announced by the open stories and not yet done.
    scenarios : ScenarioRegistry
        Scenario metadata of the running story.
    story_metadata : dict[str, str]
        Metadata of the most recently started story.
    nest_scenarios : bool
        Report scenarios as steps of the enclosing scenario.
    running_first_scenario : bool
        No scenario of the running story has finished yet.
    forced_scenario_result : ForcedOutcome
        Outcome forced by the running scenario's metadata.
    example_count : int
        Example rows started in the running examples table.
    sink : EventSink or None
        This worker's event sink, created on first use.
    """
    stack: LifecycleStack = field(default_factory=LifecycleStack)
    given_stories: GivenStoryMonitor = field(default_factory=GivenStoryMonitor)
    given_story_names: List[str] = field(default_factory=list)
    scenarios: ScenarioRegistry = field(default_factory=ScenarioRegistry)
    story_metadata: Dict[str, str] = field(default_factory=dict)
    nest_scenarios: bool = False
    running_first_scenario: bool = False
    forced_scenario_result: ForcedOutcome = ForcedOutcome.UNDETERMINED
    example_count: int = 0
    sink: Optional["EventSink"] = None

    def clear_scenario_result(self) -> None:
        self.forced_scenario_result = ForcedOutcome.UNDETERMINED

    def clear_active_scenarios(self) -> None:
        self.stack.clear_scenarios()
        self.scenarios.clear()

    def is_story_level_given(self, story: Story) -> bool:
        """True if ``story`` was announced as a given story of an open story."""
        name = story.name.lower()
        return any(name == given.lower() for given in self.given_story_names)

    def given_story_done(self, story: Story) -> None:
        if story.name in self.given_story_names:
            self.given_story_names.remove(story.name)


def _current_worker() -> Hashable:
    return threading.get_ident()


class WorkerContexts:
    """Registry of :class:`ExecutionContext` objects, one per worker.

    The worker key defaults to the calling thread's identifier. A context is
    created on first access and lives until :meth:`release`.
    """

    def __init__(self, worker_key: Callable[[], Hashable] = _current_worker):
        self._worker_key = worker_key
        self._contexts: Dict[Hashable, ExecutionContext] = {}
        self._lock = threading.Lock()

    def current(self) -> ExecutionContext:
        key = self._worker_key()
        with self._lock:
            ctx = self._contexts.get(key)
            if ctx is None:
                ctx = ExecutionContext()
                self._contexts[key] = ctx
                logger.debug("created execution context for worker %s", key)
            return ctx

    def release(self) -> Optional[ExecutionContext]:
        """Drop the calling worker's context and return it (if any)."""
        key = self._worker_key()
        with self._lock:
            return self._contexts.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)
