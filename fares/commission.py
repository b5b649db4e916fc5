"""
Purpose: Commission split + ledger.
What it does:
- split_commission(): platform fee = amount * rate, provider earnings = amount - fee
- CommissionLedger: at most one Commission per request (completion, or cancellation with a fee)
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from dispatch.exceptions import ValidationError

from .breakdown import Commission, money

logger = logging.getLogger(__name__)


def split_commission(request_id: str, amount: float, commission_rate: float, secondary_fee: float = 0.0) -> Commission:
    if amount < 0:
        raise ValidationError("Commission amount must be >= 0")
    if not 0.0 <= commission_rate <= 1.0:
        raise ValidationError("Commission rate must be within [0, 1]")

    platform_fee = money(amount * commission_rate)
    return Commission(
        request_id=request_id,
        amount=money(amount),
        platform_fee=platform_fee,
        provider_earnings=money(amount - platform_fee - secondary_fee),
        secondary_fee=money(secondary_fee),
    )


class CommissionLedger:
    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[str, Commission] = {}

    def record(self, request_id: str, amount: float, commission_rate: float, secondary_fee: float = 0.0) -> Commission:
        commission = split_commission(request_id, amount, commission_rate, secondary_fee)
        with self._guard:
            if request_id in self._entries:
                raise ValidationError(f"Commission for request {request_id} already recorded")
            self._entries[request_id] = commission

        logger.info(
            "commission recorded request=%s amount=%.2f platform_fee=%.2f",
            request_id, commission.amount, commission.platform_fee,
        )
        return commission

    def get(self, request_id: str) -> Optional[Commission]:
        return self._entries.get(request_id)

    def all(self) -> List[Commission]:
        with self._guard:
            return list(self._entries.values())

    def platform_total(self) -> float:
        return money(sum(c.platform_fee for c in self.all()))
