"""
Trip Lease Agreement generation.

``generate_tla`` is pure: it reads the accepted match and the party
records and returns the field values of a new agreement. Nothing here
touches the database.
"""

from datetime import datetime
from typing import Any, Dict

from agreements.models import TLAStatus
from services.core.snapshots import (
    PartySnapshot,
    DriverSnapshot,
    TripSnapshot,
    PaymentSnapshot,
)


def generate_tla(match, lessor_profile, lessee_profile, driver_record, now: datetime) -> Dict[str, Any]:
    """
    Build a pending_lessor agreement from a match.

    Args:
        match: Accepted Match (load and driver snapshots, terms)
        lessor_profile: User owning the driver (provides the driver)
        lessee_profile: User owning the load (hires the driver)
        driver_record: Driver being leased
        now: Generation instant; also the start date when no pickup date was agreed

    Returns:
        Dict of TripLeaseAgreement field values
    """
    terms = match.settlement_terms
    load = match.load_snapshot

    trip = TripSnapshot(
        origin=load["origin"],
        destination=load["destination"],
        cargo=load["cargo"],
        weight=load["weight"],
        start_date=terms.get("pickupDate") or now.isoformat(),
        end_date=terms.get("deliveryDate"),
    )
    payment = PaymentSnapshot(
        amount=terms["rate"],
        due_date=terms.get("deliveryDate"),
    )

    return {
        "match": match,
        "lessor_owner": lessor_profile,
        "lessee_owner": lessee_profile,
        "driver": driver_record,
        "lessor": PartySnapshot.from_profile(lessor_profile).as_dict(),
        "lessee": PartySnapshot.from_profile(lessee_profile).as_dict(),
        "driver_snapshot": DriverSnapshot.from_driver(driver_record).as_dict(),
        "trip": trip.as_dict(),
        "payment": payment.as_dict(),
        "insurance": {},
        "status": TLAStatus.PENDING_LESSOR,
        "created_at": now,
        "version": 1,
    }


def _display_date(value) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(str(value)).strftime("%B %d, %Y")
    except ValueError:
        return str(value)


def _signature_block(title: str, party: Dict[str, Any], signature) -> str:
    lines = [f"{title}:", f"Name: {party.get('legalName', 'Unknown')}"]
    if signature:
        lines.append(f"Signature: {signature['signedByName']}")
        lines.append(f"Date: {_display_date(signature['signedAt'])}")
    else:
        lines.append("Signature: _________________________")
        lines.append("Date: _________________________")
    return "\n".join(lines)


def render_tla_text(tla) -> str:
    """Plain-text rendering of an agreement for preview and download."""
    trip = tla.trip
    payment = tla.payment
    driver = tla.driver_snapshot
    insurance_option = (tla.insurance or {}).get("option")

    period = _display_date(trip.get("startDate"))
    period += f" - {_display_date(trip['endDate'])}" if trip.get("endDate") else " - Upon Delivery"
    due = _display_date(payment["dueDate"]) if payment.get("dueDate") else "Trip Completion"

    cdl = f" ({driver['cdlNumber']})" if driver.get("cdlNumber") else ""
    medical = f" (expires {_display_date(driver['medicalCardExpiry'])})" if driver.get("medicalCardExpiry") else ""

    sections = [
        "TRIP (DRIVER) LEASE AGREEMENT",
        "Short-term lease of a driver for a single trip",
        "",
        f"Lessor Carrier (Fleet A): {tla.lessor.get('legalName', 'Unknown')}",
        f"Lessee Carrier (Fleet B): {tla.lessee.get('legalName', 'Unknown')}",
        f"Driver: {driver.get('name', '')}",
        f"Route: {trip.get('origin')} -> {trip.get('destination')} ({trip.get('cargo')}, {trip.get('weight')} lbs)",
        f"Trip Period: {period}",
        f"Payment: ${payment['amount']:,.2f} due by {due}",
        "",
        "1. Fleet A supplies the Driver to Fleet B for one trip under Fleet B's operating authority.",
        "2. The lease begins when the Driver reports to Fleet B and ends on delivery.",
        "3. Fleet B has exclusive possession, control and responsibility for the Driver during the trip.",
        "4. Fleet B pays Fleet A the agreed amount on trip completion.",
        "5. Insurance, confirmed by Fleet B before the trip starts:",
        f"   [{'x' if insurance_option == 'existing_policy' else ' '}] Existing policy covers leased drivers for this trip",
        f"   [{'x' if insurance_option == 'trip_coverage' else ' '}] Trip-based coverage from an approved provider",
        f"   Fleet A confirms the Driver holds a valid CDL{cdl} and a current medical certificate{medical}.",
        "6. Each party indemnifies the other against claims caused by its own negligence.",
        "7. This Agreement terminates on delivery or by mutual consent.",
        "",
        _signature_block("Lessor (Provider of Driver)", tla.lessor, tla.lessor_signature),
        "",
        _signature_block("Lessee (Hiring Carrier)", tla.lessee, tla.lessee_signature),
    ]
    if tla.status == TLAStatus.VOIDED:
        sections.insert(0, f"*** VOIDED: {tla.voided_reason or 'no reason given'} ***")
    return "\n".join(sections)
