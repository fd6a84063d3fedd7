"""Payment provider boundary.

The lifecycle treats the provider as a black box: it is handed an amount, a
method and opaque details, and answers with success or failure, a transaction
id and the raw provider payload.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol
import time


@dataclass
class ProviderResult:
    success: bool
    transaction_id: Optional[str]
    response: Dict[str, Any] = field(default_factory=dict)


class PaymentProvider(Protocol):
    name: str

    def charge(self, amount: Decimal, method: str, details: Dict[str, Any]) -> ProviderResult:
        ...

    def refund(self, amount: Decimal, original_transaction_id: Optional[str], reason: Optional[str]) -> ProviderResult:
        ...


class MockPaymentProvider:
    """Approves everything except the well-known test decline card."""

    name = "mock_provider"
    DECLINED_CARD = "4111111111111111"

    def charge(self, amount: Decimal, method: str, details: Dict[str, Any]) -> ProviderResult:
        transaction_id = f"tr_{int(time.time() * 1000)}"
        if (details or {}).get("card_number") == self.DECLINED_CARD:
            return ProviderResult(
                success=False,
                transaction_id=transaction_id,
                response={"status": "declined", "code": "05", "message": "Payment failed"},
            )
        return ProviderResult(
            success=True,
            transaction_id=transaction_id,
            response={"status": "approved", "code": "00", "amount": str(amount), "method": method},
        )

    def refund(self, amount: Decimal, original_transaction_id: Optional[str], reason: Optional[str]) -> ProviderResult:
        return ProviderResult(
            success=True,
            transaction_id=f"refund_{int(time.time() * 1000)}",
            response={"refund": True, "amount": str(amount), "original_transaction_id": original_transaction_id},
        )
