"""English inflections used for field labels.

Covers the subset needed to turn attribute readers such as ``crew_members``
or ``ship_id`` into labels: singularize the last word, then humanize.
"""

from __future__ import annotations

import re
from typing import List, Tuple


_UNCOUNTABLE = {
    "equipment",
    "information",
    "rice",
    "money",
    "species",
    "series",
    "fish",
    "sheep",
    "jeans",
    "police",
    "news",
    "data",
    "metadata",
}

_IRREGULAR = {
    "people": "person",
    "men": "man",
    "women": "woman",
    "children": "child",
    "teeth": "tooth",
    "feet": "foot",
    "geese": "goose",
    "mice": "mouse",
    "oxen": "ox",
}

# Applied in order, first match wins.
_SINGULAR_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"(quiz)zes$", re.I), r"\1"),
    (re.compile(r"(matr)ices$", re.I), r"\1ix"),
    (re.compile(r"(vert|ind)ices$", re.I), r"\1ex"),
    (re.compile(r"^(ox)en", re.I), r"\1"),
    (re.compile(r"(alias|status)(es)?$", re.I), r"\1"),
    (re.compile(r"(octop|vir)(us|i)$", re.I), r"\1us"),
    (re.compile(r"^(a)x[ie]s$", re.I), r"\1xis"),
    (re.compile(r"(cris|test)(is|es)$", re.I), r"\1is"),
    (re.compile(r"(shoe)s$", re.I), r"\1"),
    (re.compile(r"(o)es$", re.I), r"\1"),
    (re.compile(r"(bus)(es)?$", re.I), r"\1"),
    (re.compile(r"(m|l)ice$", re.I), r"\1ouse"),
    (re.compile(r"(x|ch|ss|sh)es$", re.I), r"\1"),
    (re.compile(r"(m)ovies$", re.I), r"\1ovie"),
    (re.compile(r"(s)eries$", re.I), r"\1eries"),
    (re.compile(r"([^aeiouy]|qu)ies$", re.I), r"\1y"),
    (re.compile(r"([lr])ves$", re.I), r"\1f"),
    (re.compile(r"(tive)s$", re.I), r"\1"),
    (re.compile(r"(hive)s$", re.I), r"\1"),
    (re.compile(r"([^f])ves$", re.I), r"\1fe"),
    (re.compile(r"(^analy)(sis|ses)$", re.I), r"\1sis"),
    (re.compile(r"((a)naly|(b)a|(d)iagno|(p)arenthe|(p)rogno|(s)ynop|(t)he)(sis|ses)$", re.I), r"\1sis"),
    (re.compile(r"([ti])a$", re.I), r"\1um"),
    (re.compile(r"(n)ews$", re.I), r"\1ews"),
    (re.compile(r"(ss)$", re.I), r"\1"),
    (re.compile(r"s$", re.I), ""),
]


def _split_last_word(value: str) -> Tuple[str, str]:
    match = re.search(r"([A-Za-z]+)$", value)
    if not match:
        return value, ""
    return value[: match.start()], match.group(1)


def singularize(word: str) -> str:
    if not word:
        return word
    head, last = _split_last_word(word)
    if not last:
        return word
    lowered = last.lower()
    if lowered in _UNCOUNTABLE:
        return word
    if lowered in _IRREGULAR:
        replacement = _IRREGULAR[lowered]
        if last[:1].isupper():
            replacement = replacement[:1].upper() + replacement[1:]
        return head + replacement
    for pattern, repl in _SINGULAR_RULES:
        if pattern.search(last):
            return head + pattern.sub(repl, last, count=1)
    return word


def humanize(word: str) -> str:
    """``ship_id`` -> ``Ship``; ``crew_member`` -> ``Crew member``."""
    text = str(word or "")
    text = re.sub(r"_id$", "", text)
    text = text.replace("_", " ").strip()
    text = re.sub(r"\s+", " ", text).lower()
    return text[:1].upper() + text[1:]


def titleize(word: str) -> str:
    return " ".join(part[:1].upper() + part[1:] for part in humanize(word).split(" ") if part)
