"""
Immutable snapshot value objects.

Matches and agreements copy display and legal fields from the live
driver/load/fleet records at creation time. These types are what gets
copied, so a later edit to a Driver or a fleet profile can never reach a
negotiation or a signed agreement. Each ``as_dict`` omits absent values
instead of writing null placeholders.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from .exceptions import PreconditionError


def _compact(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value not in (None, "")}


def _iso(value) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _number(value):
    if isinstance(value, Decimal):
        return float(value)
    return value


# ---------------------- Negotiation ----------------------

@dataclass(frozen=True)
class Terms:
    """Negotiable terms of a match: {rate, pickupDate?, deliveryDate?, notes?}"""
    rate: float
    pickup_date: Optional[str] = None
    delivery_date: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.rate, bool) or not math.isfinite(self.rate):
            raise PreconditionError("Rate must be a finite number")
        if self.rate <= 0:
            raise PreconditionError("Rate must be greater than zero")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Terms":
        if not data or data.get("rate") in (None, ""):
            raise PreconditionError("A rate is required for match terms")
        try:
            rate = float(data["rate"])
        except (TypeError, ValueError):
            raise PreconditionError("Rate must be a number")
        return cls(
            rate=rate,
            pickup_date=_iso(data.get("pickupDate") or data.get("pickup_date")),
            delivery_date=_iso(data.get("deliveryDate") or data.get("delivery_date")),
            notes=data.get("notes") or None,
        )

    def as_dict(self) -> Dict[str, Any]:
        return _compact({
            "rate": self.rate,
            "pickupDate": self.pickup_date,
            "deliveryDate": self.delivery_date,
            "notes": self.notes,
        })


@dataclass(frozen=True)
class LoadSnapshot:
    origin: str
    destination: str
    cargo: str
    weight: int
    price: Optional[float] = None

    @classmethod
    def from_load(cls, load) -> "LoadSnapshot":
        return cls(
            origin=load.origin,
            destination=load.destination,
            cargo=load.cargo,
            weight=load.weight,
            price=_number(load.price),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoadSnapshot":
        return cls(
            origin=data["origin"],
            destination=data["destination"],
            cargo=data["cargo"],
            weight=data["weight"],
            price=data.get("price"),
        )

    def as_dict(self) -> Dict[str, Any]:
        return _compact({
            "origin": self.origin,
            "destination": self.destination,
            "cargo": self.cargo,
            "weight": self.weight,
            "price": self.price,
        })


@dataclass(frozen=True)
class DriverCardSnapshot:
    """Driver display fields shown on a match card."""
    name: str
    location: str = ""
    vehicle_type: str = ""
    rating: Optional[float] = None

    @classmethod
    def from_driver(cls, driver) -> "DriverCardSnapshot":
        return cls(
            name=driver.name,
            location=driver.location,
            vehicle_type=driver.get_vehicle_type_display() if driver.vehicle_type else "",
            rating=driver.rating or None,
        )

    def as_dict(self) -> Dict[str, Any]:
        return _compact({
            "name": self.name,
            "location": self.location,
            "vehicleType": self.vehicle_type,
            "rating": self.rating,
        })


# ---------------------- Trip lease agreement ----------------------

@dataclass(frozen=True)
class PartySnapshot:
    """Legal identity of a lessor or lessee fleet at agreement generation."""
    owner_operator_id: int
    legal_name: str
    contact_email: str
    address: Optional[str] = None
    dot_number: Optional[str] = None
    mc_number: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_profile(cls, profile) -> "PartySnapshot":
        return cls(
            owner_operator_id=profile.id,
            legal_name=profile.legal_name or profile.company_name or "Unknown",
            contact_email=profile.email or "",
            address=profile.address or None,
            dot_number=profile.dot_number or None,
            mc_number=profile.mc_number or None,
            phone=profile.phone_number or None,
        )

    def as_dict(self) -> Dict[str, Any]:
        data = _compact({
            "ownerOperatorId": self.owner_operator_id,
            "legalName": self.legal_name,
            "address": self.address,
            "dotNumber": self.dot_number,
            "mcNumber": self.mc_number,
            "phone": self.phone,
        })
        # contact email is always present, even when blank
        data["contactEmail"] = self.contact_email
        return data


@dataclass(frozen=True)
class DriverSnapshot:
    """Driver identity and qualification printed on the agreement."""
    id: int
    name: str
    cdl_number: Optional[str] = None
    medical_card_expiry: Optional[str] = None

    @classmethod
    def from_driver(cls, driver) -> "DriverSnapshot":
        return cls(
            id=driver.id,
            name=driver.name,
            cdl_number=driver.cdl_license or None,
            medical_card_expiry=_iso(driver.medical_card_expiry),
        )

    def as_dict(self) -> Dict[str, Any]:
        return _compact({
            "id": self.id,
            "name": self.name,
            "cdlNumber": self.cdl_number,
            "medicalCardExpiry": self.medical_card_expiry,
        })


@dataclass(frozen=True)
class TripSnapshot:
    origin: str
    destination: str
    cargo: str
    weight: int
    start_date: str
    end_date: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return _compact({
            "origin": self.origin,
            "destination": self.destination,
            "cargo": self.cargo,
            "weight": self.weight,
            "startDate": self.start_date,
            "endDate": self.end_date,
        })


@dataclass(frozen=True)
class PaymentSnapshot:
    amount: float
    due_date: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return _compact({"amount": self.amount, "dueDate": self.due_date})


@dataclass(frozen=True)
class Signature:
    """E-signature with its audit trail; written once per role."""
    signed_by: int
    signed_by_name: str
    signed_by_role: str
    signed_at: datetime
    ip_address: str = ""
    user_agent: str = ""
    consent_to_esign: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {
            "signedBy": self.signed_by,
            "signedByName": self.signed_by_name,
            "signedByRole": self.signed_by_role,
            "signedAt": self.signed_at.isoformat(),
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "consentToEsign": self.consent_to_esign,
        }
