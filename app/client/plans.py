from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.client.session import UserSession
from app.utils.money import as_amount, parse_amount


@dataclass(frozen=True)
class CreditPlan:
    id: int
    credits: int
    usd_price: Decimal
    inr_price: Decimal


@dataclass(frozen=True)
class SelectedPlan:
    plan: CreditPlan
    price: Decimal
    currency: str

    @property
    def credits(self) -> int:
        return self.plan.credits

    @property
    def currency_symbol(self) -> str:
        return '₹' if self.currency == 'INR' else '$'

    def label(self) -> str:
        return f'{self.currency_symbol}{self.price:.2f}'


CREDIT_PLANS: List[CreditPlan] = [
    CreditPlan(id=1, credits=100, usd_price=Decimal('5.00'), inr_price=Decimal('399.00')),
    CreditPlan(id=2, credits=250, usd_price=Decimal('10.00'), inr_price=Decimal('799.00')),
    CreditPlan(id=3, credits=600, usd_price=Decimal('20.00'), inr_price=Decimal('1599.00')),
]


def price_for(plan: CreditPlan, session: UserSession) -> SelectedPlan:
    if session.is_indian:
        return SelectedPlan(plan=plan, price=as_amount(plan.inr_price), currency='INR')
    return SelectedPlan(plan=plan, price=as_amount(plan.usd_price), currency='USD')


def plan_from_json(row: Dict[str, Any]) -> Optional[CreditPlan]:
    try:
        plan_id = int(row.get('id'))
        credits = int(row.get('credits'))
    except (TypeError, ValueError):
        return None
    usd = parse_amount(row.get('usdPrice'))
    inr = parse_amount(row.get('inrPrice'))
    if credits <= 0 or usd is None or inr is None:
        return None
    return CreditPlan(id=plan_id, credits=credits, usd_price=usd, inr_price=inr)
