"""Story, scenario and metadata records handed to the reporter.

These are the inputs of the lifecycle: the story loader of the host test
runtime builds them and the reporter only reads them. They are Pydantic
models so that stories can be loaded from JSON fixtures as easily as they are
built in code.
"""
from __future__ import annotations
from pathlib import PurePosixPath
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


#: Reserved names of the synthetic stories that open and close a run.
BEFORE_STORIES = "BeforeStories"
AFTER_STORIES = "AfterStories"


class Meta(BaseModel):
    """Property bag attached to a story or a scenario.

    Property names are case-sensitive. A flag such as ``@skip`` is a property
    whose value is the empty string.

    Examples
    --------
    >>> meta = Meta.parse("@skip @issue BUG-1")
    >>> meta.has_property("skip"), meta.get_property("issue")
    (True, 'BUG-1')
    """
    model_config = ConfigDict(frozen=True)

    properties: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def of(cls, **properties: str) -> "Meta":
        return cls(properties=dict(properties))

    @classmethod
    def parse(cls, text: str) -> "Meta":
        """Parse a ``@name value ...`` meta line into properties.

        Each ``@``-prefixed word starts a property; the words up to the next
        ``@`` word form its value.
        """
        properties: Dict[str, str] = {}
        name: str | None = None
        words: List[str] = []
        for token in (text or "").split():
            if token.startswith("@"):
                if name:
                    properties[name] = " ".join(words)
                name, words = token[1:], []
            elif name:
                words.append(token)
        if name:
            properties[name] = " ".join(words)
        return cls(properties=properties)

    @property
    def property_names(self) -> List[str]:
        return list(self.properties)

    def has_property(self, name: str) -> bool:
        return name in self.properties

    def get_property(self, name: str) -> str:
        return self.properties.get(name, "")

    def as_dict(self) -> Dict[str, str]:
        return dict(self.properties)


EMPTY_META = Meta()


class Narrative(BaseModel):
    """``In order to / As a / I want to`` block of a story."""
    in_order_to: str = ""
    as_a: str = ""
    i_want_to: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.in_order_to or self.as_a or self.i_want_to)

    def as_text(self) -> str:
        lines = []
        if self.in_order_to:
            lines.append(f"In order to {self.in_order_to}")
        if self.as_a:
            lines.append(f"As a {self.as_a}")
        if self.i_want_to:
            lines.append(f"I want to {self.i_want_to}")
        return "\n".join(lines).strip()


class GivenStory(BaseModel):
    """Reference to a precondition story, by path."""
    path: str

    @property
    def name(self) -> str:
        return PurePosixPath(self.path.replace("\\", "/")).name


class ExamplesTable(BaseModel):
    """Parameter table driving repeated runs of one scenario body."""
    headers: List[str] = Field(default_factory=list)
    rows: List[Dict[str, str]] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rows


class Scenario(BaseModel):
    """A titled sequence of step texts with its own metadata.

    The title is unique within its story; the reporter looks scenario
    metadata up by title.
    """
    title: str
    meta: Meta = Field(default_factory=Meta)
    steps: List[str] = Field(default_factory=list)
    examples: ExamplesTable = Field(default_factory=ExamplesTable)


class Story(BaseModel):
    """A story file: narrative, metadata, scenarios and given-story references.

    Attributes
    ----------
    name : str
        File name of the story (e.g. ``"make_a_purchase.story"``).
    path : str
        Path of the story relative to the story root.
    description : str
        Optional title line; the humanized name is used when empty.
    """
    name: str
    path: str = ""
    description: str = ""
    narrative: Narrative = Field(default_factory=Narrative)
    meta: Meta = Field(default_factory=Meta)
    scenarios: List[Scenario] = Field(default_factory=list)
    given_stories: List[GivenStory] = Field(default_factory=list)

    @classmethod
    def fixture(cls, name: str) -> "Story":
        """Build one of the synthetic ``BeforeStories``/``AfterStories`` stories."""
        if name not in (BEFORE_STORIES, AFTER_STORIES):
            raise ValueError(f"not a fixture story name: {name!r}")
        return cls(name=name)

    @property
    def key(self) -> str:
        return self.path or self.name

    @property
    def is_fixture(self) -> bool:
        return self.name in (BEFORE_STORIES, AFTER_STORIES)

    @property
    def is_after_stories(self) -> bool:
        return self.name == AFTER_STORIES

    @property
    def has_given_stories(self) -> bool:
        return bool(self.given_stories)

    def scenario_key(self, scenario: Scenario) -> str:
        """Key identifying ``scenario`` across stories (``path + title``)."""
        return f"{self.path}{scenario.title}"
