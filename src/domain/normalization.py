from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal


NormalizedAccountStatus = Literal[
    "connected",
    "stopped",
    "checkpoint",
    "connecting",
    "disconnected",
    "unknown",
]
ProfilePlatform = Literal["linkedin", "instagram", "facebook"]


@dataclass(frozen=True)
class ProfilePathRule:
    domains: tuple[str, ...]
    path_prefix: str = ""

    @property
    def canonical_domain(self) -> str:
        return self.domains[0]


PROFILE_PATH_RULES: dict[str, ProfilePathRule] = {
    "linkedin": ProfilePathRule(domains=("linkedin.com",), path_prefix="in/"),
    "instagram": ProfilePathRule(domains=("instagram.com",)),
    "facebook": ProfilePathRule(domains=("facebook.com", "fb.com")),
}

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_WWW_RE = re.compile(r"^www\.", re.IGNORECASE)


def strip_scheme_and_www(value: str) -> str:
    return _WWW_RE.sub("", _SCHEME_RE.sub("", value.strip()))


def _slug_pattern(domain: str, path_prefix: str) -> re.Pattern[str]:
    return re.compile(rf"{re.escape(domain)}/{re.escape(path_prefix)}([^/?#]+)", re.IGNORECASE)


def normalize_profile_url(url: str | None, platform: str = "linkedin") -> str | None:
    """
    Map any accepted spelling of a profile reference to one canonical string.

    `https://www.linkedin.com/in/jdoe/`, `http://linkedin.com/in/jdoe` and
    `linkedin.com/in/jdoe?x=1` all become `https://www.linkedin.com/in/jdoe`.
    Input with no platform domain is treated as a bare identifier and
    returned unchanged.
    """
    if url is None:
        return None
    text = str(url)
    if not text.strip():
        return None

    rule = PROFILE_PATH_RULES.get(platform)
    if rule is None:
        return text

    stripped = strip_scheme_and_www(text)
    for domain in rule.domains:
        match = _slug_pattern(domain, rule.path_prefix).search(stripped)
        if match:
            return f"https://www.{rule.canonical_domain}/{rule.path_prefix}{match.group(1)}"

    lowered = stripped.lower()
    for domain in rule.domains:
        root = f"{domain}/{rule.path_prefix}"
        position = lowered.find(root)
        if position < 0:
            continue
        remainder = re.split(r"[?#]", stripped[position + len(root):], maxsplit=1)[0]
        if not remainder.strip("/"):
            # A profile root with no slug names nobody.
            return None
        return f"https://www.{re.split(r'[?#]', stripped, maxsplit=1)[0]}"

    return text


def is_profile_root(match_key: str, platform: str = "linkedin") -> bool:
    """True when `match_key` stops at the profile path prefix, e.g. `linkedin.com/in/`."""
    rule = PROFILE_PATH_RULES.get(platform)
    if rule is None:
        return False
    key = match_key.strip().lower().rstrip("/")
    return any(key == f"{domain}/{rule.path_prefix}".rstrip("/") for domain in rule.domains)


def profile_match_key(url: str) -> str:
    """Scheme- and www-less form used for loose equality and substring matching."""
    return strip_scheme_and_www(url)


def detect_platform(url: str | None) -> str | None:
    if not url:
        return None
    lowered = url.lower()
    if "linkedin.com" in lowered:
        return "linkedin"
    if "instagram.com" in lowered:
        return "instagram"
    if "facebook.com" in lowered or "fb.com" in lowered:
        return "facebook"
    if "whatsapp" in lowered:
        return "whatsapp"
    return None


def extract_public_identifier(url_or_handle: str | None, platform: str = "linkedin") -> str | None:
    if not url_or_handle:
        return None
    text = str(url_or_handle).strip()
    rule = PROFILE_PATH_RULES.get(platform)
    if rule is None or not any(domain in text.lower() for domain in rule.domains):
        return text.lstrip("@") or None
    for domain in rule.domains:
        match = _slug_pattern(domain, rule.path_prefix).search(text)
        if match:
            return match.group(1)
    return None


def normalize_phone_number(value: str | None) -> str | None:
    """Keep digits only, preserving a single leading `+`."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    digits = re.sub(r"\D", "", text)
    if not digits:
        return None
    return f"+{digits}" if text.startswith("+") else digits


def phone_digit_count(value: str | None) -> int:
    return len(re.sub(r"\D", "", value or ""))


_ACCOUNT_STATUS_TABLE: dict[str, NormalizedAccountStatus] = {
    "OK": "connected",
    "CREATION_SUCCESS": "connected",
    "RECONNECTED": "connected",
    "SYNC_SUCCESS": "connected",
    "ERROR": "stopped",
    "STOPPED": "stopped",
    "CREDENTIALS": "checkpoint",
    "CONNECTING": "connecting",
    "DELETED": "disconnected",
}

# Checked in order; "disconnected" has to win over its "connected" substring.
_ACCOUNT_STATUS_HEURISTICS: tuple[tuple[tuple[str, ...], NormalizedAccountStatus], ...] = (
    (("disconnected", "stopped"), "disconnected"),
    (("checkpoint", "credential"), "checkpoint"),
    (("connected", "active"), "connected"),
)


def normalize_account_status(value: str | None) -> NormalizedAccountStatus:
    if not value:
        return "unknown"
    text = str(value).strip()
    exact = _ACCOUNT_STATUS_TABLE.get(text.upper())
    if exact:
        return exact
    lowered = text.lower()
    for fragments, mapped in _ACCOUNT_STATUS_HEURISTICS:
        if any(fragment in lowered for fragment in fragments):
            return mapped
    return "unknown"
