"""CLI tools for form-link administration."""

import uuid

import click
from sqlalchemy.exc import SQLAlchemyError

from formlinks.core.exceptions import FormLinkError
from formlinks.db.enums import Role
from formlinks.db.models import Customer, User
from formlinks.db.session import SessionLocal
from formlinks.services import form_link_service
from formlinks.services.collaborators import (
    CustomerConsentChecker,
    DatabaseAuditSink,
    DatabaseCustomerDirectory,
    DatabaseNotificationEmitter,
)
from formlinks.services.token_service import TokenIssuer


@click.group()
def cli():
    """Form links CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Customer name")
@click.option("--email", default=None, help="Customer email")
@click.option("--phone", default=None, help="Customer phone")
@click.option("--address", default=None, help="Customer address")
@click.option("--consent/--no-consent", default=False, help="Customer agreed to be contacted")
def create_customer(name: str, email: str | None, phone: str | None, address: str | None, consent: bool):
    """
    Create a customer record to issue form links against.

    Example:
        python -m formlinks.cli create-customer --name "Acme Ltd" --email "ops@acme.test" --consent
    """
    db = SessionLocal()
    try:
        customer = Customer(
            name=name.strip(),
            email=email.lower() if email else None,
            phone=phone,
            address=address,
            communication_consent=consent,
        )
        db.add(customer)
        db.commit()
        click.echo(f"✓ Created customer: {customer.name}")
        click.echo(f"  ID: {customer.id}")
    except SQLAlchemyError as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="Staff email address")
@click.option("--name", "display_name", required=True, help="Display name")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role]),
    default=Role.SALES.value,
    help="Staff role (read_only users cannot approve)",
)
def create_user(email: str, display_name: str, role: str):
    """
    Create a staff user who can issue links and review submissions.

    Example:
        python -m formlinks.cli create-user --email "rep@acme.test" --name "Sales Rep" --role manager
    """
    db = SessionLocal()
    try:
        existing = db.query(User).filter(User.email == email.lower()).first()
        if existing:
            click.echo(f"❌ User already exists: {email}")
            return
        user = User(email=email.lower(), display_name=display_name, role=role)
        db.add(user)
        db.commit()
        click.echo(f"✓ Created user: {email} ({role})")
        click.echo(f"  ID: {user.id}")
    except SQLAlchemyError as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--customer-id", required=True, type=click.UUID, help="Customer ID")
@click.option("--hours", "expiration_hours", default=None, type=int, help="Hours until the link expires")
@click.option("--created-by", default=None, type=click.UUID, help="Issuing staff user ID")
@click.option("--project-id", "external_project_id", default=None, help="External project reference")
@click.option("--notify/--no-notify", default=False, help="Notify the customer if they consented")
def issue_link(
    customer_id: uuid.UUID,
    expiration_hours: int | None,
    created_by: uuid.UUID | None,
    external_project_id: str | None,
    notify: bool,
):
    """
    Issue a single-use form link for a customer.

    Example:
        python -m formlinks.cli issue-link --customer-id <uuid> --hours 24
    """
    db = SessionLocal()
    try:
        issuer = TokenIssuer(
            db,
            customers=DatabaseCustomerDirectory(db),
            audit=DatabaseAuditSink(db),
            notifier=DatabaseNotificationEmitter(db),
            consent=CustomerConsentChecker(db),
        )
        issued = issuer.issue(
            customer_id,
            expiration_hours=expiration_hours,
            created_by=created_by,
            external_project_id=external_project_id,
            notify_customer=notify,
        )
        click.echo(f"✓ Issued form link {issued.form_link.id}")
        click.echo(f"  URL: {issued.url}")
        click.echo(f"  Expires: {issued.form_link.expires_at:%Y-%m-%d %H:%M} UTC")
    except FormLinkError as e:
        click.echo(f"❌ {e.reason}: {e.message}")
    finally:
        db.close()


@cli.command()
@click.option("--form-link-id", required=True, type=click.UUID, help="Form link ID")
@click.option("--actor-id", default=None, type=click.UUID, help="Staff user performing the delete")
def soft_delete_link(form_link_id: uuid.UUID, actor_id: uuid.UUID | None):
    """
    Soft delete a form link. The row is kept but no longer resolves.

    Example:
        python -m formlinks.cli soft-delete-link --form-link-id <uuid>
    """
    db = SessionLocal()
    try:
        form_link_service.soft_delete_form_link(
            db, form_link_id, actor_id=actor_id, audit=DatabaseAuditSink(db)
        )
        click.echo(f"✓ Deleted form link {form_link_id}")
    except FormLinkError as e:
        click.echo(f"❌ {e.reason}: {e.message}")
    finally:
        db.close()


@cli.command()
@click.option("--limit", default=20, help="Maximum rows to show")
def pending(limit: int):
    """List submissions awaiting approval, oldest first."""
    db = SessionLocal()
    try:
        rows = form_link_service.list_pending_submissions(db, limit=limit)
        if not rows:
            click.echo("No submissions awaiting approval")
            return
        for form_link, customer in rows:
            submitted = f"{form_link.submitted_at:%Y-%m-%d %H:%M}" if form_link.submitted_at else "-"
            click.echo(f"{form_link.id}  {submitted}  {customer.name}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
