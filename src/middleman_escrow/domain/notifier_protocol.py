"""Email Notifier Protocol.

Defines the interface that all notification channels must implement.
Structural typing (PEP 544): implementations only need a matching ``send``;
they do not inherit from a base class.

The domain layer has ZERO imports from httpx or any email provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal  # noqa: TC003 - dataclass field type
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class EscrowNotice:
    """A single email to one party of a middleman request.

    Attributes:
        recipient: Email address of the party.
        role: "Buyer" or "Seller", used in the greeting and subject.
        category: What is being traded.
        price: Agreed price.
        currency: Currency of the price (no conversion is ever applied).
        action_link: Link the party follows to act on the request.
        code: Confirmation code, only present when one was just issued.
        headline: One-line summary of why the email was sent.
    """

    recipient: str
    role: str
    category: str
    price: Decimal
    currency: str
    action_link: str
    code: str | None = None
    headline: str = "The middleman service has been initiated for the following details:"

    @property
    def subject(self) -> str:
        return f"Middleman Service Details - {self.role}"


@runtime_checkable
class EmailNotifier(Protocol):
    """Protocol that all notifier implementations must satisfy.

    Implementations must not raise on delivery failure; they log and return
    False so that a failed email never undoes a committed transition.
    """

    async def send(self, notice: EscrowNotice) -> bool:
        """Deliver the notice. Returns True if the provider accepted it."""
        ...
