import re
from fractions import Fraction

from grading.normalizer import normalize_answer, normalize_for_enumeration, singularize

# Fixed-mode enumeration questions give full credit from this ratio upwards.
ENUMERATION_PASS_RATIO = Fraction(4, 5)

NEAR_MATCH_MIN_LENGTH = 5
CONTAINS_MIN_LENGTH = 3
PREFIX_MIN_LENGTH = 4

_KEY_SPLIT_RE = re.compile(r"[\n,;]")
# Student lists may also be numbered ("1." / "1)") or bulleted ("- ").
_ANSWER_SPLIT_RE = re.compile(r"[\n,;]|\d+[.)]\s*|-\s*")

_BOOLEAN_TOKENS = {"t": "t", "true": "t", "f": "f", "false": "f"}


def is_multiple_choice_correct(answer, answer_key):
    return normalize_answer(answer) == normalize_answer(answer_key)


def near_word_match(a, b):
    if a == b:
        return True
    if singularize(a) == singularize(b):
        return True
    if len(a) >= NEAR_MATCH_MIN_LENGTH and len(b) >= NEAR_MATCH_MIN_LENGTH:
        is_prefix = a.startswith(b) or b.startswith(a)
        if is_prefix and abs(len(a) - len(b)) <= 1:
            return True
    return False


def is_identification_correct(answer, answer_key):
    """
    Loose identification matching.

    Equal after normalization is always correct (an empty key therefore only
    accepts an empty answer). Otherwise both sides must have the same number
    of words and every positional pair must be a near match: equal, equal
    once singularized, or for words of five letters or more a prefix that
    differs by at most one character ("Newton" vs "Newtons", "color" vs
    "colors").
    """
    user_norm = normalize_answer(answer)
    key_norm = normalize_answer(answer_key)
    if user_norm == key_norm:
        return True
    if not user_norm or not key_norm:
        return False

    user_words = user_norm.split()
    key_words = key_norm.split()
    if len(user_words) != len(key_words):
        return False

    return all(near_word_match(u, k) for u, k in zip(user_words, key_words))


def parse_enumeration_key(answer_key):
    items = (normalize_for_enumeration(part) for part in _KEY_SPLIT_RE.split(answer_key or ""))
    return [item for item in items if item]


def parse_enumeration_answer(answer):
    items = (normalize_for_enumeration(part) for part in _ANSWER_SPLIT_RE.split(answer or ""))
    return [item for item in items if item]


def enumeration_variants(key_item):
    norm = normalize_for_enumeration(key_item)
    variants = [norm]
    if "/" in norm:
        parts = [p.strip() for p in norm.split("/") if p.strip()]
        variants.extend(parts)
        variants.append(" ".join(parts))
    if " " in norm:
        variants.append(norm.replace(" ", ""))
    # ordered de-duplication keeps the scan deterministic
    return list(dict.fromkeys(variants))


def boolean_token(item):
    return _BOOLEAN_TOKENS.get(normalize_for_enumeration(item), "")


def _item_matches(user_item, variant):
    if user_item == variant:
        return True
    if len(user_item) >= CONTAINS_MIN_LENGTH and user_item in variant:
        return True
    if len(variant) >= CONTAINS_MIN_LENGTH and variant in user_item:
        return True
    if len(user_item) >= PREFIX_MIN_LENGTH and variant.startswith(user_item):
        return True
    if len(variant) >= PREFIX_MIN_LENGTH and user_item.startswith(variant):
        return True
    return False


def count_enumeration_matches(user_items, key_items):
    """
    Number of key items the student listed.

    When every key item and every student item is a true/false token the
    lists are compared position by position. Otherwise matching is greedy
    and order independent: each key item claims the first unused student
    item matching one of its variants, so no student item counts twice.
    """
    key_bools = [boolean_token(item) for item in key_items]
    user_bools = [boolean_token(item) for item in user_items]
    if key_items and all(key_bools) and all(user_bools):
        return sum(1 for u, k in zip(user_bools, key_bools) if u == k)

    matched = 0
    used = set()
    for key_item in key_items:
        variants = enumeration_variants(key_item)
        for index, user_item in enumerate(user_items):
            if index in used:
                continue
            if any(_item_matches(user_item, v) for v in variants):
                matched += 1
                used.add(index)
                break
    return matched


def enumeration_passes(matched, expected):
    if expected <= 0:
        return False
    return Fraction(matched, expected) >= ENUMERATION_PASS_RATIO
