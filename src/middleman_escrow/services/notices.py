"""Helpers for building and dispatching party notifications.

Notices are built inside a transaction but dispatched only after it commits,
so a rolled-back transition never emails anyone.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urlencode

from middleman_escrow.domain.notifier_protocol import EscrowNotice
from middleman_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from middleman_escrow.domain.enums import PartyRole
    from middleman_escrow.domain.notifier_protocol import EmailNotifier
    from middleman_escrow.infrastructure.database.orm_models import EscrowRequest

logger = get_logger(__name__)


def action_link(base_url: str, request_id: uuid.UUID, role: PartyRole) -> str:
    query = urlencode({"requestId": str(request_id), "role": role.value})
    return f"{base_url.rstrip('/')}/waiting?{query}"


def build_notice(
    request: EscrowRequest,
    role: PartyRole,
    base_url: str,
    code: str | None = None,
    headline: str | None = None,
) -> EscrowNotice:
    """Build the notice for the party playing `role` on `request`."""
    extra = {"headline": headline} if headline else {}
    return EscrowNotice(
        recipient=request.email_for(role),
        role=role.value.capitalize(),
        category=request.category,
        price=request.price,
        currency=request.currency,
        action_link=action_link(base_url, request.id, role),
        code=code,
        **extra,
    )


async def dispatch(notifier: EmailNotifier, notices: Iterable[EscrowNotice]) -> None:
    """Send every notice; a failure is logged and never propagated."""
    for notice in notices:
        try:
            await notifier.send(notice)
        except Exception as exc:
            logger.exception(
                "notice.dispatch_failed",
                recipient=notice.recipient,
                subject=notice.subject,
                error=str(exc),
            )
