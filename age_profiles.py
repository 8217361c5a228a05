"""
ResusGPS: Age Profiles
======================
Free-text age ("2 days", "6 mo", "14 yr") -> age bucket + reference ranges.
The bucket drives vital-sign interpretation, airway positioning,
choking technique and the default resuscitation fluid.
"""

import re
from dataclasses import dataclass
from typing import Optional

from constants import AGE_CONSTANTS
from models import AgeCategory, AgeProfile

_AGE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*-?\s*([a-z]*)")
_NEWBORN_WORDS = ("newborn", "neonate", "neonatal")

# Unit prefixes -> days per unit
_UNIT_DAYS = (
    ("d", 1.0),        # day, days, d
    ("w", 7.0),        # week, wk, w
    ("m", 30.4),       # month, mo, m (checked before 'y')
    ("y", 365.25),     # year, yr, y, yo
)

def _parse_age_days(age: Optional[str]) -> Optional[float]:
    if not age:
        return None
    text = age.strip().lower()
    days = 0.0
    matched = False
    for number, unit in _AGE_PATTERN.findall(text):
        value = float(number)
        if not unit:
            # A bare number means years ("5")
            days += value * 365.25
            matched = True
            continue
        for prefix, per_unit in _UNIT_DAYS:
            if unit.startswith(prefix):
                days += value * per_unit
                matched = True
                break
    return days if matched else None

def parse_age_years(age: Optional[str]) -> Optional[float]:
    days = _parse_age_days(age)
    return None if days is None else days / 365.25

def get_age_category(age: Optional[str]) -> AgeCategory:
    """
    Heuristic classifier. Unparseable or missing input defaults to CHILD,
    the bucket whose ranges are least dangerous to be wrong about.
    """
    if age and any(word in age.lower() for word in _NEWBORN_WORDS):
        return AgeCategory.NEONATE
    days = _parse_age_days(age)
    if days is None:
        return AgeCategory.CHILD
    if days < AGE_CONSTANTS.NEONATE_MAX_DAYS + 1:
        return AgeCategory.NEONATE
    years = days / 365.25
    if years * 12 < AGE_CONSTANTS.INFANT_MAX_MONTHS:
        return AgeCategory.INFANT
    if years < AGE_CONSTANTS.CHILD_MAX_YEARS:
        return AgeCategory.CHILD
    if years < AGE_CONSTANTS.ADOLESCENT_MAX_YEARS:
        return AgeCategory.ADOLESCENT
    return AgeCategory.ADULT

def get_age_profile(age: Optional[str]) -> AgeProfile:
    return AgeProfile(category=get_age_category(age), years=parse_age_years(age))

def is_under_one(profile: AgeProfile) -> bool:
    return profile.category in (AgeCategory.NEONATE, AgeCategory.INFANT)

# --- REFERENCE RANGES ---

@dataclass(frozen=True)
class VitalRanges:
    hr_low: int
    hr_high: int
    hr_severe_low: int   # Below this: bradycardia needing CPR/epinephrine
    hr_severe_high: int  # Above this: consider SVT
    rr_low: int
    rr_high: int
    sbp_min: int         # Hypotension floor

_RANGES = {
    AgeCategory.NEONATE: VitalRanges(100, 180, 80, 220, 30, 60, 60),
    AgeCategory.INFANT: VitalRanges(100, 160, 60, 220, 30, 50, 70),
    AgeCategory.CHILD: VitalRanges(70, 140, 60, 180, 18, 30, 70),
    AgeCategory.ADOLESCENT: VitalRanges(60, 100, 50, 150, 12, 20, 90),
    AgeCategory.ADULT: VitalRanges(60, 100, 40, 150, 12, 20, 90),
}

def get_vital_ranges(profile: AgeProfile) -> VitalRanges:
    ranges = _RANGES[profile.category]
    if profile.category == AgeCategory.CHILD:
        # PALS hypotension: SBP < 70 + (2 x age in years)
        years = profile.years if profile.years is not None else AGE_CONSTANTS.DEFAULT_CHILD_YEARS
        sbp_min = int(70 + 2 * min(max(years, 1.0), 10.0))
        ranges = VitalRanges(ranges.hr_low, ranges.hr_high, ranges.hr_severe_low,
                             ranges.hr_severe_high, ranges.rr_low, ranges.rr_high, sbp_min)
    return ranges

def airway_position(profile: AgeProfile) -> str:
    if is_under_one(profile):
        # Large occiput: a towel under the shoulders keeps the airway straight
        return "NEUTRAL POSITION (towel under shoulders)"
    if profile.category == AgeCategory.CHILD:
        return "SNIFFING POSITION"
    return "HEAD-TILT CHIN-LIFT"
