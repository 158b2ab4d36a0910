from __future__ import annotations
import re

import inflection

#: Private-use delimiters the story parser substitutes for ``{`` and ``}``
#: in parameterised step titles.
OPEN_PARAM_CHAR = "｟"
CLOSE_PARAM_CHAR = "｠"

_TRUE_WORDS = {"true", "yes", "y", "on", "1"}
_FALSE_WORDS = {"false", "no", "n", "off", "0"}



def normalized_title(title: str) -> str:
    """Restore literal braces in a step title.

    Parameters
    ----------
    title
        Step title as produced by the story parser.

    Returns
    -------
    str
        Title with the private-use placeholder delimiters replaced by ``{``
        and ``}``.

    Examples
    --------
    >>> normalized_title("Given a \\uff5ffoo\\uff60")
    'Given a {foo}'
    """
    return title.replace(OPEN_PARAM_CHAR, "{").replace(CLOSE_PARAM_CHAR, "}")


def humanize(name: str) -> str:
    """Turn a camel-cased or underscored identifier into a sentence.

    Strings that already contain spaces are returned unchanged.

    Examples
    --------
    >>> humanize("make_a_purchase")
    'Make a purchase'
    >>> humanize("MakeAPurchase")
    'Make a purchase'
    """
    if not name or " " in name:
        return name
    return inflection.humanize(inflection.underscore(name))


def remove_suffix(name: str) -> str:
    """Drop everything from the first ``.`` on (``"a.story"`` -> ``"a"``)."""
    return name.split(".", 1)[0] if "." in name else name


def _norm_text(s: str | None) -> str:
    """Normalize a text fragment for comparisons.

    Collapses internal whitespace, strips leading/trailing space,
    and lowercases the result. ``None`` becomes an empty string.

    Examples
    --------
    >>> _norm_text("  Hello   World  ")
    'hello world'
    >>> _norm_text(None)
    ''
    """
    return "" if s is None else " ".join(str(s).strip().split()).lower()


def _as_bool(value: str | bool | None, default: bool) -> bool:
    """Parse a configuration flag, falling back to ``default``.

    Raises
    ------
    ValueError
        If ``value`` is a non-empty string that is not a recognised flag.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = _norm_text(value)
    if not text:
        return default
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise ValueError(f"not a boolean flag: {value!r}")


def _slugify(s: str) -> str:
    """Create a URL/filename-friendly slug.

    Converts to lowercase, collapses whitespace to ``-``,
    and removes characters outside ``[a-z0-9-]``.

    Examples
    --------
    >>> _slugify("  Buy a (used) car! ")
    'buy-a-used-car'
    """
    s = re.sub(r"\s+", "-", s.strip().lower())
    s = re.sub(r"[^a-z0-9\-]+", "", s)
    return s
