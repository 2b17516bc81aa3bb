"""
Data models for split_bills - expense lines, calculation requests and results
"""

import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


def is_finite_number(value: Any) -> bool:
    # bool is an int subclass; NaN and Infinity slip through JSON parsing
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _number(payload: Dict[str, Any], key: str, default: Optional[float] = None) -> float:
    value = payload.get(key)
    if value is None:
        if default is None:
            raise ValueError("missing_fields")
        return default
    if not is_finite_number(value):
        raise ValueError(f"invalid_{key}")
    return float(value)


def _flag(payload: Dict[str, Any], key: str) -> bool:
    value = payload.get(key, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"invalid_{key}")
    return value


@dataclass
class ExpenseLine:
    """One contribution logged against a participant name"""
    name: str
    amount_spent: float
    id: Any = None
    description: str = ""
    quantity: int = 1
    tip: float = 0.0
    is_sponsor: bool = False
    sponsor_amount: float = 0.0
    is_receiver: bool = False
    paid_by: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ExpenseLine":
        if not isinstance(payload, dict):
            raise ValueError("invalid_people_payload")

        name = payload.get("name")
        if name is None:
            raise ValueError("missing_fields")
        if not isinstance(name, str):
            raise ValueError("invalid_name")

        quantity = payload.get("quantity", 1)
        if quantity is None:
            quantity = 1
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ValueError("invalid_quantity")

        paid_by = payload.get("paid_by")
        if paid_by is not None and not isinstance(paid_by, str):
            raise ValueError("invalid_paid_by")

        description = payload.get("description") or ""
        if not isinstance(description, str):
            raise ValueError("invalid_description")

        return cls(
            id=payload.get("id"),
            name=name,
            description=description,
            amount_spent=_number(payload, "amount_spent"),
            quantity=quantity,
            tip=_number(payload, "tip", 0.0),
            is_sponsor=_flag(payload, "is_sponsor"),
            sponsor_amount=_number(payload, "sponsor_amount", 0.0),
            is_receiver=_flag(payload, "is_receiver"),
            # an empty picker value means "nobody else paid"
            paid_by=paid_by or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_people(payload: Any) -> List[ExpenseLine]:
    if payload is None:
        raise ValueError("missing_fields")
    if not isinstance(payload, list):
        raise ValueError("invalid_people_payload")
    return [ExpenseLine.from_dict(item) for item in payload]


@dataclass
class CalculateRequest:
    people: List[ExpenseLine] = field(default_factory=list)
    include_sponsor: bool = False
    # Accepted for compatibility; sponsorship is always capped at total spend.
    restrict_sponsor_to_spent: Optional[bool] = None
    fund_amount: float = 0.0
    tip_percentage: float = 0.0

    @classmethod
    def from_dict(cls, payload: Any) -> "CalculateRequest":
        if not isinstance(payload, dict):
            raise ValueError("invalid_payload")
        if "include_sponsor" not in payload:
            raise ValueError("missing_fields")

        restrict = payload.get("restrict_sponsor_to_spent")
        if restrict is not None and not isinstance(restrict, bool):
            raise ValueError("invalid_restrict_sponsor_to_spent")

        return cls(
            people=parse_people(payload.get("people")),
            include_sponsor=_flag(payload, "include_sponsor"),
            restrict_sponsor_to_spent=restrict,
            fund_amount=_number(payload, "fund_amount", 0.0),
            tip_percentage=_number(payload, "tip_percentage", 0.0),
        )


@dataclass
class PersonSummary:
    """Running totals for every line logged under one name"""
    name: str
    amount_spent: float = 0.0
    tip: float = 0.0
    sponsor_amount: float = 0.0
    is_sponsor: bool = False
    is_receiver: bool = False
    will_receive_from_others: float = 0.0
    owes_to_others: float = 0.0
    delegated_self: float = 0.0


@dataclass
class Settlement:
    name: str
    amount_spent: float
    tip_paid: float
    sponsor_cost: float
    share_cost: float
    balance: float
    settlement_type: str
    is_receiver: bool


@dataclass
class CalculateResponse:
    total_spent: float
    total_sponsored: float
    fund_amount: float
    total_tip: float
    amount_to_share: float
    num_participants: int
    per_person_share: float
    settlements: List[Settlement] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
