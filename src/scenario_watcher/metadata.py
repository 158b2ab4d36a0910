"""Interpretation of story and scenario metadata.

A :class:`~scenario_watcher.model.Meta` bag carries two kinds of information:
reserved flags that force an outcome (``pending``, ``wip``/``skip``,
``ignore``, ``manual``) and classification properties (``issue(s)``,
``feature(s)``, ``epic(s)``, ``tag(s)``). :class:`MetadataResolver` turns
both into plain values; it holds no state.
"""
from __future__ import annotations
from typing import List, NamedTuple

import inflection

from .core import TestTag
from .model import Meta


PENDING = "pending"
MANUAL = "manual"
SKIP = "skip"
WIP = "wip"
IGNORE = "ignore"

ISSUE = "issue"
FEATURE = "feature"
EPIC = "epic"
TAG = "tag"


class MetadataFlags(NamedTuple):
    """Outcome flags present in one metadata bag."""
    is_pending: bool = False
    is_skipped: bool = False
    is_ignored: bool = False
    is_manual: bool = False

    @property
    def is_candidate_to_be_executed(self) -> bool:
        """True unless the bag forces pending, skipped or ignored."""
        return not (self.is_pending or self.is_skipped or self.is_ignored)


class MetadataResolver:
    """Pure functions over metadata bags.

    Examples
    --------
    >>> resolver = MetadataResolver()
    >>> resolver.resolve(Meta.of(wip="")).is_skipped
    True
    >>> resolver.tag_values(Meta.of(issue="BUG-1", issues="BUG-2, BUG-3"), "issue")
    ['BUG-1', 'BUG-2', 'BUG-3']
    """

    def resolve(self, meta: Meta) -> MetadataFlags:
        return MetadataFlags(
            is_pending=meta.has_property(PENDING),
            is_skipped=meta.has_property(WIP) or meta.has_property(SKIP),
            is_ignored=meta.has_property(IGNORE),
            is_manual=meta.has_property(MANUAL),
        )

    def is_candidate_to_be_executed(self, meta: Meta) -> bool:
        return self.resolve(meta).is_candidate_to_be_executed

    def tag_values(self, meta: Meta, tag_type: str) -> List[str]:
        """Union of the singular and plural properties for ``tag_type``.

        The singular value comes first; both are comma-split, trimmed, and
        empty entries are dropped.
        """
        joined = ",".join(
            value for value in (meta.get_property(tag_type),
                                meta.get_property(inflection.pluralize(tag_type)))
            if value
        )
        return [part.strip() for part in joined.split(",") if part.strip()]

    def issues(self, meta: Meta) -> List[str]:
        return self.tag_values(meta, ISSUE)

    def tags_of_type(self, meta: Meta, tag_type: str) -> List[TestTag]:
        """Typed tags for ``tag_type``.

        ``feature`` and ``epic`` values become tags of that type. ``tag``
        values of the form ``"type:value"`` become a tag ``value`` of type
        ``type``; any other shape becomes a tag ``"true"`` typed by its first
        ``:``-separated part.
        """
        values = self.tag_values(meta, tag_type)
        if tag_type in (FEATURE, EPIC):
            return [TestTag(name=value, type=tag_type) for value in values]
        if tag_type == TAG:
            return [self._free_form_tag(value) for value in values]
        raise ValueError(f"unsupported tag type: {tag_type!r}")

    def features_and_epics(self, meta: Meta) -> List[TestTag]:
        return self.tags_of_type(meta, FEATURE) + self.tags_of_type(meta, EPIC)

    def free_form_tags(self, meta: Meta) -> List[TestTag]:
        return self.tags_of_type(meta, TAG)

    @staticmethod
    def _free_form_tag(value: str) -> TestTag:
        parts = [part.strip() for part in value.split(":")]
        if len(parts) == 2:
            return TestTag(name=parts[1], type=parts[0])
        return TestTag(name="true", type=parts[0])
