"""Structured logging helpers (PII-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    form_link_id: UUID | str | None = None,
    customer_id: UUID | str | None = None,
    actor_id: UUID | str | None = None,
    offer_id: UUID | str | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (ids and classifications only, never tokens)."""
    context: dict[str, Any] = {}
    if form_link_id:
        context["form_link_id"] = str(form_link_id)
    if customer_id:
        context["customer_id"] = str(customer_id)
    if actor_id:
        context["actor_id"] = str(actor_id)
    if offer_id:
        context["offer_id"] = str(offer_id)
    if reason:
        context["reason"] = reason
    return context
