"""
Profile resolution — maps a free-form employee team label onto one of the
three billing/costing profiles.

Absent or unrecognised labels fall into the conception bucket; several
callers rely on that default instead of an error path.
"""
import unicodedata
from enum import Enum
from typing import Optional


class Profile(str, Enum):
    CONCEPTION = "conception"
    CREA = "créa"
    DEV = "dev"


PROFILES = (Profile.CONCEPTION, Profile.CREA, Profile.DEV)

_CREA_LABELS = {"crea", "creation"}
_DEV_LABELS = {"dev", "developpement", "developement"}

# ASCII slugs used in column names (rate_crea, budget_crea) and response keys.
_SLUGS = {
    Profile.CONCEPTION: "conception",
    Profile.CREA: "crea",
    Profile.DEV: "dev",
}


def _normalize_label(label: str) -> str:
    decomposed = unicodedata.normalize("NFD", label.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def resolve_profile(team: Optional[str]) -> Profile:
    """Return the profile for *team*. Never raises."""
    if not team:
        return Profile.CONCEPTION
    base = _normalize_label(team)
    if base in _CREA_LABELS:
        return Profile.CREA
    if base in _DEV_LABELS:
        return Profile.DEV
    # commercial / conception / direction and anything unknown
    return Profile.CONCEPTION


def section_key(profile: Profile) -> str:
    return _SLUGS[profile]


def rate_field(profile: Profile, prefix: str = "rate") -> str:
    """Column name for *profile*, e.g. ``rate_crea`` or ``budget_dev``."""
    return f"{prefix}_{_SLUGS[profile]}"
