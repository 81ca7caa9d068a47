"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
    false,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from formlinks.core.exceptions import PersistenceError
from formlinks.db.base import Base
from formlinks.db.enums import (
    FormLinkLifecycle,
    FormLinkStatus,
    OfferSource,
    OfferStatus,
    Role,
)

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Customer(Base):
    """Internal customer record a form link is issued against."""

    __tablename__ = "customers"
    __table_args__ = (Index("idx_customers_deleted", "is_deleted"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    communication_consent: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


class User(Base):
    """Staff member. Only the role matters to this service."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), default=Role.SALES.value, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


class FormLink(Base):
    """Single-use, time-boxed link to a customer data-collection form."""

    __tablename__ = "form_links"
    __table_args__ = (
        UniqueConstraint("token", name="uq_form_links_token"),
        Index("idx_form_links_customer", "customer_id"),
        Index("idx_form_links_status", "status"),
        Index("idx_form_links_deleted", "is_deleted"),
        Index("idx_form_links_expires", "expires_at"),
        Index("idx_form_links_submitted", "submitted_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    token: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=FormLinkStatus.PENDING.value, nullable=False
    )
    is_used: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )

    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True, onupdate=utcnow)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    submission_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    # "metadata" is reserved on declarative classes
    link_metadata: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    customer: Mapped["Customer"] = relationship()

    @property
    def lifecycle(self) -> FormLinkLifecycle:
        if self.is_deleted:
            return FormLinkLifecycle.DELETED
        return FormLinkLifecycle(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status in {s.value for s in FormLinkStatus.terminal()}


class Offer(Base):
    """Sales offer. Created from approved form submissions, never mutated here."""

    __tablename__ = "offers"
    __table_args__ = (
        UniqueConstraint("offer_number", name="uq_offers_offer_number"),
        Index("idx_offers_customer", "customer_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    offer_number: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    requirements: Mapped[str] = mapped_column(Text, nullable=False)
    customer_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    our_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=OfferStatus.PENDING.value, nullable=False
    )
    source: Mapped[str] = mapped_column(
        String(20), default=OfferSource.FORM.value, nullable=False
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    details: Mapped[list["OfferDetail"]] = relationship(
        back_populates="offer", order_by="OfferDetail.created_at"
    )


class OfferDetail(Base):
    """Line item of an offer."""

    __tablename__ = "offer_details"
    __table_args__ = (Index("idx_offer_details_offer", "offer_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    offer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("offers.id", ondelete="CASCADE"), nullable=False
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    service_category_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    service_subcategory_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    offer: Mapped["Offer"] = relationship(back_populates="details")


class AuditLog(Base):
    """
    Audit trail for form-link state transitions.

    Security:
    - Never stores tokens or API keys
    - Details are ID-only (no submission content)
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_target", "target_type", "target_id"),
        Index("idx_audit_event_created", "event_type", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True  # System and public events have no actor
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)  # AuditEventType
    target_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    target_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


class Notification(Base):
    """In-app notification for staff, or an outbound notice to a customer."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notif_user_created", "user_id", "created_at"),
        Index("idx_notif_customer_created", "customer_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


@event.listens_for(Session, "before_flush")
def _prevent_form_link_hard_delete(session, flush_context, instances) -> None:
    for obj in session.deleted:
        if isinstance(obj, FormLink):
            raise PersistenceError(
                "Hard deletion of form links is not allowed; use soft delete instead"
            )
