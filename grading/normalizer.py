import re

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^\w\s/-]")
_AND_RE = re.compile(r"\band\b", re.IGNORECASE)
_PLURAL_ES_RE = re.compile(r"(ches|shes|xes|zes|ses|oes)$")


def _collapse(text):
    return _WHITESPACE_RE.sub(" ", (text or "").lower()).strip()


def normalize_answer(text):
    """
    Canonical form used for multiple choice and identification comparisons.

    Lowercase, single spaces, trimmed, punctuation stripped except "/" and "-",
    then hyphens become spaces ("Sub-total" -> "sub total").
    """
    return _DISALLOWED_RE.sub("", _collapse(text)).replace("-", " ")


def normalize_for_enumeration(text):
    """
    Canonical form for a single enumeration item.

    Same punctuation rules as normalize_answer but hyphens are kept and the
    standalone word "and" is dropped ("salt and pepper" -> "salt pepper").
    """
    stripped = _DISALLOWED_RE.sub("", _collapse(text))
    return _collapse(_AND_RE.sub(" ", stripped))


def singularize(word):
    # suffix rules only, no dictionary: "series" -> "sery" is accepted
    if len(word) <= 3:
        return word
    if word.endswith("ies") and len(word) > 4:
        return f"{word[:-3]}y"
    if _PLURAL_ES_RE.search(word) and len(word) > 4:
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word
