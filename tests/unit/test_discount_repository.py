"""
Unit tests for stored discount codes and redemption.
"""
from datetime import datetime, timezone

import pytest

from lashdesk.lib.errors import AlreadyUsedByUser, ExhaustedPool
from lashdesk.models.orders import LabsOrderRow
from lashdesk.schemas.discount import DiscountCode, DiscountType
from lashdesk.services.discount_codes import check_discount_code
from lashdesk.services.discount_repository import DiscountCodeRepository


@pytest.fixture
def repo(db_session):
    return DiscountCodeRepository(db_session)


def create_code(repo, **overrides) -> DiscountCode:
    data = dict(code="LABS15", discount_type=DiscountType.PERCENTAGE, discount_value=15, max_uses=1)
    data.update(overrides)
    return repo.create(DiscountCode(**data))


@pytest.mark.unit
def test_create_and_lookup_case_insensitive(repo):
    created = create_code(repo, code="labs15")

    record = repo.get_record("  Labs15 ")

    assert record.id == created.id
    assert record.code == "LABS15"
    assert record.used_count == 0
    assert record.used_by == []


@pytest.mark.unit
def test_unknown_or_blank_code(repo):
    assert repo.get_record("NOPE") is None
    assert repo.get_by_code("   ") is None


@pytest.mark.unit
def test_redeem_takes_one_use(repo, db_session):
    code = create_code(repo, max_uses=3)

    repo.redeem(code.id, "Client@Example.com", order_id="order-1")
    db_session.commit()

    record = repo.get_record("LABS15")
    assert record.used_count == 1
    assert record.used_by == ["client@example.com"]
    assert record.remaining_uses == 2


@pytest.mark.unit
def test_last_use_cannot_be_taken_twice(repo, db_session):
    code = create_code(repo, max_uses=1)
    stale = repo.get_record("LABS15")

    repo.redeem(code.id, "first@example.com")
    db_session.commit()

    # A checkout that validated before the first redemption still passes the rule check...
    check_discount_code(stale, "LABS15", "second@example.com", 22000)
    # ...but loses at redemption time.
    with pytest.raises(ExhaustedPool):
        repo.redeem(code.id, "second@example.com")
    db_session.rollback()

    assert repo.get_record("LABS15").used_count == 1


@pytest.mark.unit
def test_same_identifier_cannot_redeem_twice(repo, db_session):
    code = create_code(repo, max_uses=None, is_first_time_only=True)

    repo.redeem(code.id, "amina@example.com")
    db_session.commit()

    with pytest.raises(AlreadyUsedByUser):
        repo.redeem(code.id, "AMINA@example.com")
    db_session.rollback()

    record = repo.get_record("LABS15")
    assert record.used_count == 1
    assert record.max_uses is None


@pytest.mark.unit
def test_unbounded_pool_accepts_many_clients(repo, db_session):
    code = create_code(repo, max_uses=None)

    for i in range(20):
        repo.redeem(code.id, f"client{i}@example.com")
    db_session.commit()

    assert repo.get_record("LABS15").used_count == 20


@pytest.mark.unit
def test_has_prior_orders(repo, db_session):
    db_session.add(LabsOrderRow(
        id="order-1",
        email="amina@example.com",
        items=[],
        subtotal=22000,
        total=22000,
        initial_payment=22000,
        created_at=datetime(2025, 3, 1, tzinfo=timezone.utc),
    ))
    db_session.commit()

    assert repo.has_prior_orders("AMINA@example.com") is True
    assert repo.has_prior_orders("new@example.com") is False
    assert repo.has_prior_orders(None) is False
