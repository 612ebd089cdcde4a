"""
Driver/load fit scoring.

Scores a driver against a load on five components:
    - vehicle match        (0-30)
    - qualification match  (0-25)
    - location proximity   (0-20)
    - driver rating        (0-15)
    - compliance status    (0-10)

The total (0-100) is stored on a match at creation and used to rank
candidates for a load or loads for a driver.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

# Documents expiring within this many days put a driver in the yellow band
EXPIRY_WARNING_DAYS = 30

COMPLIANCE_POINTS = {"green": 10, "yellow": 5, "red": 0}


@dataclass(frozen=True)
class ScoreBreakdown:
    vehicle_match: int
    qualification_match: int
    location_score: int
    rating_score: int
    compliance_score: int

    @property
    def total(self) -> int:
        return min(100, round(
            self.vehicle_match
            + self.qualification_match
            + self.location_score
            + self.rating_score
            + self.compliance_score
        ))


@dataclass(frozen=True)
class MatchCandidate:
    driver: object
    load: object
    score: ScoreBreakdown
    compliance: str


# ===================== Components =====================

def compliance_status(driver, today: date) -> str:
    """Return 'green', 'yellow' or 'red' from the driver's CDL and medical card."""
    if not driver.cdl_license or not driver.cdl_expiry or not driver.medical_card_expiry:
        return "red"

    status = "green"
    for expiry in (driver.cdl_expiry, driver.medical_card_expiry):
        days_left = (expiry - today).days
        if days_left < 0:
            return "red"
        if days_left <= EXPIRY_WARNING_DAYS:
            status = "yellow"
    return status


def _driver_qualifications(driver) -> set:
    quals = {str(cert).strip().lower() for cert in (driver.certifications or [])}
    if driver.vehicle_type:
        quals.add(driver.vehicle_type.lower())
        quals.add(driver.get_vehicle_type_display().lower())
    return quals


def _vehicle_score(driver, load) -> int:
    required = [str(q).strip().lower() for q in (load.required_qualifications or [])]
    if not required:
        return 30
    if not driver.vehicle_type:
        return 10

    vehicle = {driver.vehicle_type.lower(), driver.get_vehicle_type_display().lower()}
    return 30 if vehicle & set(required) else 10


def _qualification_score(driver, load) -> int:
    required = [str(q).strip().lower() for q in (load.required_qualifications or [])]
    if not required:
        return 25

    held = _driver_qualifications(driver)
    matched = sum(1 for q in required if q in held)
    return round(25 * matched / len(required))


def _city(value: str) -> str:
    return (value or "").split(",")[0].strip().lower()


def _state(value: str) -> str:
    parts = (value or "").split(",")
    return parts[1].strip().lower() if len(parts) > 1 else ""


def _location_score(driver, load) -> int:
    """
    Rough proximity from the "City, ST" strings: same city 20, same state 12,
    otherwise 5, unknown 10.
    """
    if not driver.location or not load.origin:
        return 10
    if _city(driver.location) and _city(driver.location) == _city(load.origin):
        return 20
    if _state(driver.location) and _state(driver.location) == _state(load.origin):
        return 12
    return 5


def _rating_score(driver) -> int:
    if not driver.rating_count:
        return 8  # unrated drivers get a neutral score
    return round(15 * min(driver.rating, 5.0) / 5.0)


def calculate_match_score(driver, load, today: date) -> ScoreBreakdown:
    return ScoreBreakdown(
        vehicle_match=_vehicle_score(driver, load),
        qualification_match=_qualification_score(driver, load),
        location_score=_location_score(driver, load),
        rating_score=_rating_score(driver),
        compliance_score=COMPLIANCE_POINTS[compliance_status(driver, today)],
    )


def match_quality_label(score: int) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Fair"
    return "Poor"


# ===================== Ranking =====================

def find_matching_drivers(
    load,
    drivers: Iterable,
    today: date,
    only_available: bool = True,
    only_compliant: bool = True,
    max_results: Optional[int] = 10,
) -> List[MatchCandidate]:
    """
    Rank drivers for a load, best first.

    Args:
        load: Load instance
        drivers: Driver instances to consider (other fleets' drivers)
        today: Date used for document expiry checks
        only_available: Skip drivers that are not 'available'
        only_compliant: Skip drivers in the red compliance band
        max_results: Cap on returned candidates (None for all)

    Returns:
        List of MatchCandidate sorted by total score, highest first
    """
    candidates: List[MatchCandidate] = []
    for driver in drivers:
        if only_available and driver.availability != "available":
            continue
        compliance = compliance_status(driver, today)
        if only_compliant and compliance == "red":
            continue
        candidates.append(MatchCandidate(
            driver=driver,
            load=load,
            score=calculate_match_score(driver, load, today),
            compliance=compliance,
        ))

    candidates.sort(key=lambda c: c.score.total, reverse=True)
    logger.debug("Ranked %d drivers for load %s", len(candidates), load.id)
    return candidates[:max_results] if max_results else candidates


def find_matching_loads(
    driver,
    loads: Iterable,
    today: date,
    max_results: Optional[int] = 10,
) -> List[MatchCandidate]:
    """Rank pending loads for a driver, best first."""
    compliance = compliance_status(driver, today)
    candidates = [
        MatchCandidate(
            driver=driver,
            load=load,
            score=calculate_match_score(driver, load, today),
            compliance=compliance,
        )
        for load in loads
        if load.status == "pending"
    ]
    candidates.sort(key=lambda c: c.score.total, reverse=True)
    return candidates[:max_results] if max_results else candidates
