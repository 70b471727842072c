# matching/fuzzy.py
from rapidfuzz import fuzz

from matching.normalize import normalize_name

# Containment only counts once both keys are this long, so 'abc' never
# swallows 'abc landscaping'.
MIN_CONTAINMENT_LENGTH = 6
TOKEN_SORT_THRESHOLD = 90


def fuzzy_name_match(name1, name2, *, normalized: bool = False) -> bool:
    """
    Deterministic name comparison on normalize_name() keys.

    Two names match when, after normalization:
      1) they are equal and non-empty, or
      2) both are at least MIN_CONTAINMENT_LENGTH characters and one
         contains the other, or
      3) rapidfuzz token_sort_ratio >= TOKEN_SORT_THRESHOLD.
    """
    a = name1 if normalized else normalize_name(name1)
    b = name2 if normalized else normalize_name(name2)
    if not a or not b:
        return False
    if a == b:
        return True
    if len(a) >= MIN_CONTAINMENT_LENGTH and len(b) >= MIN_CONTAINMENT_LENGTH:
        if a in b or b in a:
            return True
    return fuzz.token_sort_ratio(a, b) >= TOKEN_SORT_THRESHOLD


def contains_either_way(name1, name2) -> bool:
    """Plain normalized containment in either direction (jobsite name vs account name)."""
    a = normalize_name(name1)
    b = normalize_name(name2)
    if not a or not b:
        return False
    if min(len(a), len(b)) < 3:
        return a == b
    return a in b or b in a


def _house_number(key: str) -> str:
    head = key.split(" ", 1)[0]
    return head if head[:1].isdigit() else ""


def address_match(addr1: str, addr2: str) -> bool:
    """
    Compare two normalize_address() keys.

    Equal keys match. Otherwise one must contain the other (both at least
    MIN_CONTAINMENT_LENGTH long) and the leading house numbers must agree,
    so '12 oak' never links to '120 oak'.
    """
    if not addr1 or not addr2:
        return False
    if addr1 == addr2:
        return True
    if len(addr1) < MIN_CONTAINMENT_LENGTH or len(addr2) < MIN_CONTAINMENT_LENGTH:
        return False
    if _house_number(addr1) != _house_number(addr2):
        return False
    return addr1 in addr2 or addr2 in addr1


def first_fuzzy_match(key: str, candidates) -> str | None:
    """
    Return the id of the first candidate whose key fuzzy-matches `key`.

    `candidates` is an ordered iterable of (normalized_key, target_id); an
    exact key match anywhere beats an earlier fuzzy one.
    """
    if not key:
        return None
    candidates = list(candidates)
    for cand_key, target_id in candidates:
        if cand_key == key:
            return target_id
    for cand_key, target_id in candidates:
        if fuzzy_name_match(key, cand_key, normalized=True):
            return target_id
    return None


def find_account_by_name(name, index) -> str | None:
    """Account id whose name matches `name`; `index.account_names` is [(key, account_id), ...] in sheet order."""
    return first_fuzzy_match(normalize_name(name), index.account_names)
