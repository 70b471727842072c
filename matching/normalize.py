# matching/normalize.py
import re
import pandas as pd
import phonenumbers

# --------- helpers ---------
_ALNUM = re.compile(r"[^a-z0-9]+")
_NON_DIGIT = re.compile(r"\D+")
_SPACES = re.compile(r"\s+")
_NAME_PUNCT = re.compile(r"[.,\-_&'/]")
_ADDRESS_PUNCT = re.compile(r"[.,#]")
_COMPANY_SUFFIXES = re.compile(r"\b(inc|llc|ltd|corp|corporation|company|co)\b")
_STREET_TYPES = re.compile(r"\b(street|st|avenue|ave|road|rd|drive|dr|boulevard|blvd|way|lane|ln)\b")

def _norm_str(x) -> str:
    if x is None:
        return ""
    if isinstance(x, float) and pd.isna(x):
        return ""
    return str(x).strip()

def _norm_lower(x) -> str:
    return _norm_str(x).lower()

def _alnum(s: str) -> str:
    return _ALNUM.sub("", _norm_lower(s))

def _collapse(s: str) -> str:
    return _SPACES.sub(" ", s).strip()

# --------- names & addresses ---------
def normalize_name(name) -> str:
    """
    Company / person name key used by every name-based strategy:
      'Acme Landscaping, Inc.' -> 'acme landscaping'
      'O'Brien & Sons Co'      -> 'o brien sons'
    """
    s = _norm_lower(name)
    if not s:
        return ""
    s = _collapse(_NAME_PUNCT.sub(" ", s))
    s = _COMPANY_SUFFIXES.sub("", s)
    return _collapse(s)

def normalize_address(address) -> str:
    """
    '123 Main St., Unit #4' -> '123 main unit 4'
    Street-type words are dropped so 'Street' and 'St' compare equal.
    """
    s = _norm_lower(address)
    if not s:
        return ""
    s = _collapse(_ADDRESS_PUNCT.sub(" ", s))
    s = _STREET_TYPES.sub("", s)
    return _collapse(s)

def normalize_tag(tag) -> str:
    return _SPACES.sub("", _norm_lower(tag))

# --------- email & phone ---------
def normalize_email(email) -> str:
    """
    Lowercase, safe-trim. No plus-tag folding: estimate and lead emails
    must equal the contact email exactly.
    """
    return _norm_lower(email)

def normalize_phone(phone, region: str = "US") -> str:
    """
    Digits-only phone key.

    When phonenumbers accepts the value as a possible number for `region`
    the key is its E.164 form without the '+', so '(604) 555-0101' and
    '+1 604 555 0101' share a key. Anything else falls back to the bare
    digits of the input.
    """
    raw = _norm_str(phone)
    if not raw:
        return ""
    digits = _NON_DIGIT.sub("", raw)
    if not digits:
        return ""
    try:
        parsed = phonenumbers.parse(raw, region)
    except phonenumbers.NumberParseException:
        return digits
    if not phonenumbers.is_possible_number(parsed):
        return digits
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164).lstrip("+")

def split_tags(value) -> list[str]:
    """'VIP, Commercial,vip' -> ['VIP', 'Commercial'] (order kept, de-duplicated case-insensitively)."""
    if isinstance(value, (list, tuple, set)):
        parts = [_norm_str(v) for v in value]
    else:
        parts = [_norm_str(v) for v in _norm_str(value).split(",")]
    seen = set()
    tags = []
    for part in parts:
        key = normalize_tag(part)
        if not key or key in seen:
            continue
        seen.add(key)
        tags.append(part)
    return tags

def slug(*values) -> str:
    """Stable alphanumeric key for ids built from free text."""
    return "-".join(a for a in (_alnum(v) for v in values) if a)
