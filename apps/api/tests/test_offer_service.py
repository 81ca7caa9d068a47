"""Tests for synthesizing offers from submissions."""

import re
import uuid

import pytest

from formlinks.core.exceptions import CollisionExhaustedError, FormValidationError
from formlinks.db.enums import OfferSource, OfferStatus
from formlinks.db.models import Offer, OfferDetail
from formlinks.services import offer_service


def test_synthesize_maps_submission_fields(db, components, customer, approver):
    submission = {
        "requirements": "Service the rooftop units",
        "additional_notes": "Access via the loading dock",
        "preferred_contact_method": "email",
        "preferred_contact_time": "mornings",
        "customer_data": {"email": "ops@acme.test", "address": "7 Dock Road"},
        "service_details": [
            {"description": "Unit A", "category_id": "hvac", "subcategory_id": "rooftop"},
            {"description": "Unit B"},
        ],
    }

    result = components.synthesizer.synthesize(submission, customer.id, created_by=approver.id)

    offer = result.offer
    assert result.success
    assert result.warnings == []
    assert offer.requirements == "Service the rooftop units"
    assert offer.title == "Service the rooftop units"
    assert offer.customer_comments == "Access via the loading dock"
    assert offer.our_comments == "Preferred contact method: email, Preferred time: mornings"
    assert offer.address == "7 Dock Road"
    assert offer.status == OfferStatus.PENDING.value
    assert offer.source == OfferSource.FORM.value
    assert offer.created_by == approver.id
    assert [d.description for d in result.offer_details] == ["Unit A", "Unit B"]
    assert result.offer_details[0].service_category_id == "hvac"
    assert result.offer_details[0].service_subcategory_id == "rooftop"


def test_offer_number_format(components, customer):
    result = components.synthesizer.synthesize({"requirements": "x"}, customer.id)

    assert re.fullmatch(r"FORM-20261018-[A-Z0-9]{4}", result.offer.offer_number)


def test_long_requirements_are_truncated_in_title(components, customer):
    requirements = "R" * 80

    result = components.synthesizer.synthesize({"requirements": requirements}, customer.id)

    assert result.offer.title == "R" * 47 + "..."
    assert len(result.offer.title) == 50
    assert result.offer.requirements == requirements


def test_contact_time_without_method_is_ignored(components, customer):
    result = components.synthesizer.synthesize(
        {"requirements": "x", "preferred_contact_time": "evenings"}, customer.id
    )

    assert result.offer.our_comments is None


def test_single_detail_from_requirements_when_none_itemized(components, customer):
    result = components.synthesizer.synthesize({"requirements": "Paint the fence"}, customer.id)

    assert len(result.offer_details) == 1
    assert result.offer_details[0].description == "Paint the fence"


def test_missing_contact_info_is_a_warning(components, customer):
    result = components.synthesizer.synthesize(
        {"requirements": "x", "customer_data": {"name": "Pat"}}, customer.id
    )

    assert result.success
    assert "No contact information (email or phone) provided" in result.warnings


@pytest.mark.parametrize(
    "submission",
    [None, {}, {"template": "contact_update.v1", "customer_data": {"email": "a@b.test"}}],
)
def test_missing_requirements_is_rejected(db, components, customer, submission):
    with pytest.raises(FormValidationError):
        components.synthesizer.synthesize(submission, customer.id)

    assert db.query(Offer).count() == 0


def test_unknown_customer_is_rejected(db, components):
    with pytest.raises(FormValidationError):
        components.synthesizer.synthesize({"requirements": "x"}, uuid.uuid4())

    assert db.query(Offer).count() == 0


def test_offer_number_collision_exhaustion(db, monkeypatch, components, customer):
    monkeypatch.setattr(offer_service, "generate_random_string", lambda length, alphabet: "AAAA")
    components.synthesizer.synthesize({"requirements": "first"}, customer.id)

    with pytest.raises(CollisionExhaustedError):
        components.synthesizer.synthesize({"requirements": "second"}, customer.id)

    assert db.query(Offer).count() == 1


def test_failed_detail_is_skipped_with_warning(db, monkeypatch, components, customer):
    original = offer_service.build_offer_detail

    def flaky_detail(offer_id, detail):
        built = original(offer_id, detail)
        if detail.description == "broken":
            built.description = None  # violates NOT NULL on flush
        return built

    monkeypatch.setattr(offer_service, "build_offer_detail", flaky_detail)

    result = components.synthesizer.synthesize(
        {
            "requirements": "x",
            "customer_data": {"email": "a@b.test"},
            "service_details": [
                {"description": "first"},
                {"description": "broken"},
                {"description": "third"},
            ],
        },
        customer.id,
    )

    assert result.success
    assert [d.description for d in result.offer_details] == ["first", "third"]
    assert result.warnings == ["Service detail 2 could not be added to the offer"]
    assert db.query(Offer).count() == 1
    assert db.query(OfferDetail).filter(OfferDetail.offer_id == result.offer.id).count() == 2
