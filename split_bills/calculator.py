"""
Settlement engine for split_bills
Turns expense lines into one reconciled balance per participant
"""

from typing import Dict, Iterable, List, Tuple

from .models import CalculateRequest, CalculateResponse, ExpenseLine, PersonSummary, Settlement

# Balances within this band of zero count as settled.
SETTLEMENT_EPSILON = 0.01


def group_by_name(people: Iterable[ExpenseLine]) -> Dict[str, PersonSummary]:
    """Collapse lines into one summary per name, registering reimbursements"""
    grouped: Dict[str, PersonSummary] = {}

    for line in people:
        entry = grouped.setdefault(line.name, PersonSummary(name=line.name))

        entry.sponsor_amount += line.sponsor_amount
        if line.is_sponsor:
            entry.is_sponsor = True
        if line.is_receiver:
            entry.is_receiver = True

        base = line.amount_spent * line.quantity

        if line.paid_by is None:
            entry.amount_spent += base
            entry.tip += line.tip
        elif line.paid_by == line.name:
            # Private expense: paid out of pocket and owed in full by the same person
            entry.delegated_self += base + line.tip
            entry.amount_spent += base
            entry.tip += line.tip
        else:
            total_expense = base + line.tip
            entry.will_receive_from_others += total_expense
            payer = grouped.setdefault(line.paid_by, PersonSummary(name=line.paid_by))
            payer.owes_to_others += total_expense

    return grouped


def tip_totals(people: List[PersonSummary], tip_percentage: float) -> Tuple[float, float, float]:
    """Return (base spend, explicit tips, spend including the global tip)"""
    tip_multiplier = 1.0 + tip_percentage / 100.0
    total_spent_base = sum(p.amount_spent for p in people)
    total_explicit_tip = sum(p.tip for p in people)
    # The global percentage never compounds onto explicit tips
    total_spent_with_tip = total_spent_base * tip_multiplier + total_explicit_tip
    return total_spent_base, total_explicit_tip, total_spent_with_tip


def tip_paid(person: PersonSummary, tip_percentage: float) -> float:
    global_tip_part = person.amount_spent * (tip_percentage / 100.0) if tip_percentage > 0 else 0.0
    return person.tip + global_tip_part


def cap_sponsorship(total_sponsored: float, total_spent_with_tip: float) -> Tuple[float, float]:
    """Return (effective sponsorship, scaling ratio); sponsors never fund more than was spent"""
    if total_sponsored > total_spent_with_tip:
        ratio = total_spent_with_tip / total_sponsored if total_sponsored > 0 else 0.0
        return total_spent_with_tip, ratio
    return total_sponsored, 1.0


def is_participant(person: PersonSummary, include_sponsor: bool) -> bool:
    return include_sponsor or not person.is_sponsor


def classify(balance: float) -> str:
    if balance > SETTLEMENT_EPSILON:
        return "receive"
    if balance < -SETTLEMENT_EPSILON:
        return "pay"
    return "settled"


def calculate_split(request: CalculateRequest) -> CalculateResponse:
    """Run the whole settlement pipeline for one request.

    Every call builds its own grouping table, so concurrent calls share nothing.
    """
    tip_percentage = request.tip_percentage
    fund_amount = request.fund_amount

    people = list(group_by_name(request.people).values())

    total_spent_base, total_explicit_tip, total_spent_with_tip = tip_totals(people, tip_percentage)
    all_delegated_expenses = sum(p.delegated_self for p in people)

    total_sponsored = sum(p.sponsor_amount for p in people)
    effective_sponsored, sponsorship_ratio = cap_sponsorship(total_sponsored, total_spent_with_tip)

    amount_to_share = max(
        0.0,
        total_spent_with_tip - effective_sponsored - fund_amount - all_delegated_expenses,
    )

    num_participants = sum(1 for p in people if is_participant(p, request.include_sponsor))
    per_person_share = amount_to_share / num_participants if num_participants > 0 else 0.0

    settlements: List[Settlement] = []
    for person in people:
        paid_tip = tip_paid(person, tip_percentage)
        sponsor_cost = person.sponsor_amount * sponsorship_ratio if person.is_sponsor else 0.0
        share_cost = per_person_share if is_participant(person, request.include_sponsor) else 0.0

        total_cost = sponsor_cost + share_cost + person.delegated_self + person.owes_to_others
        balance = (person.amount_spent + paid_tip + person.will_receive_from_others) - total_cost

        settlements.append(
            Settlement(
                name=person.name,
                amount_spent=person.amount_spent,
                tip_paid=paid_tip,
                sponsor_cost=sponsor_cost,
                share_cost=share_cost,
                balance=balance,
                settlement_type=classify(balance),
                is_receiver=person.is_receiver,
            )
        )

    # Payers first, receivers last
    settlements.sort(key=lambda s: (s.balance, s.name))

    total_spent = total_spent_base + total_explicit_tip
    return CalculateResponse(
        total_spent=total_spent,
        total_sponsored=effective_sponsored,
        fund_amount=fund_amount,
        total_tip=total_spent_with_tip - total_spent,
        amount_to_share=amount_to_share,
        num_participants=num_participants,
        per_person_share=per_person_share,
        settlements=settlements,
    )
