"""
Admin cancellation of validated tickets.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from bakery.errors import (
    ImmutableRecordError,
    NotEligibleForCancellation,
    NotFound,
    PermissionDenied,
)
from bakery.models import Movement, Sale, SaleCancellation
from bakery.services import cancellation_service, ledger_service, sales_service


REASON = "Erreur de saisie en caisse"


@pytest.fixture
def sold_pain(db_session, shop_product, shop_user):
    """10 pains in the shop, 3 of them sold on one ticket."""
    pain = shop_product("Pain", 10, 500)
    sale = sales_service.finalize_sale(
        [{"product_id": pain.id, "quantity": 3}], 1500, seller_id=shop_user.id
    )
    return pain, sale


class TestCancel:

    def test_cancel_restores_shop_stock(self, db_session, sold_pain, admin_user):
        pain, sale = sold_pain

        result = cancellation_service.cancel(sale.id, REASON, admin_user)

        assert result.sale.status == "annulee"
        assert result.sale.cancelled_at is not None
        balance = ledger_service.get_balance(pain.id, "shop")
        assert balance.available == Decimal("10")
        assert balance.sold == Decimal("0")

    def test_cancel_writes_record_and_movement(self, db_session, sold_pain, admin_user):
        pain, sale = sold_pain

        cancellation_service.cancel(sale.id, REASON, admin_user)

        record = db_session.query(SaleCancellation).filter_by(sale_id=sale.id).one()
        assert record.reason == REASON
        assert record.amount_cancelled == Decimal("1500")
        assert record.cancelled_by_user_id == admin_user.id
        movement = db_session.query(Movement).filter_by(
            sale_id=sale.id, movement_type="annulation_vente"
        ).one()
        assert movement.quantity == Decimal("3")
        assert movement.quantity_before == Decimal("7")
        assert movement.quantity_after == Decimal("10")
        assert movement.reference == f"Annulation vente {sale.ticket_number}"

    def test_second_cancel_is_refused(self, db_session, sold_pain, admin_user):
        pain, sale = sold_pain
        cancellation_service.cancel(sale.id, REASON, admin_user)

        with pytest.raises(NotEligibleForCancellation):
            cancellation_service.cancel(sale.id, REASON, admin_user)

        assert db_session.query(SaleCancellation).count() == 1
        assert ledger_service.get_balance(pain.id, "shop").available == Decimal("10")

    def test_seventh_day_is_still_allowed(self, db_session, sold_pain, admin_user):
        _, sale = sold_pain
        now = sale.created_at + timedelta(days=7, hours=23)

        result = cancellation_service.cancel(sale.id, REASON, admin_user, now=now)

        assert result.sale.status == "annulee"

    def test_eight_days_is_too_late(self, db_session, sold_pain, admin_user):
        pain, sale = sold_pain
        now = sale.created_at + timedelta(days=8)

        with pytest.raises(NotEligibleForCancellation) as exc:
            cancellation_service.cancel(sale.id, REASON, admin_user, now=now)

        assert exc.value.details["error"] == "Délai dépassé"
        assert ledger_service.get_balance(pain.id, "shop").available == Decimal("7")

    @pytest.mark.parametrize(
        "reason,error",
        [
            (None, "Motif manquant"),
            ("", "Motif manquant"),
            ("   ", "Motif manquant"),
            ("trop tot", "Motif trop court"),
        ],
    )
    def test_reason_is_required(self, db_session, sold_pain, admin_user, reason, error):
        pain, sale = sold_pain

        with pytest.raises(NotEligibleForCancellation) as exc:
            cancellation_service.cancel(sale.id, reason, admin_user)

        assert exc.value.details["error"] == error
        assert exc.value.status_code == 409
        assert ledger_service.get_balance(pain.id, "shop").available == Decimal("7")
        assert db_session.query(SaleCancellation).count() == 0

    def test_non_admin_is_refused(self, db_session, sold_pain, shop_user):
        pain, sale = sold_pain

        with pytest.raises(NotEligibleForCancellation) as exc:
            cancellation_service.cancel(sale.id, REASON, shop_user)

        assert exc.value.details["error"] == "Permission refusée"
        assert exc.value.details["required_role"] == "admin"
        assert ledger_service.get_balance(pain.id, "shop").available == Decimal("7")
        assert db_session.get(Sale, sale.id).status == "validee"

    def test_unknown_sale(self, db_session, admin_user):
        with pytest.raises(NotFound):
            cancellation_service.cancel(4242, REASON, admin_user)

    def test_cancellation_record_is_immutable(self, db_session, sold_pain, admin_user):
        _, sale = sold_pain
        cancellation_service.cancel(sale.id, REASON, admin_user)
        record = db_session.query(SaleCancellation).one()

        record.reason = "Autre motif pour la trace"
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()


class TestCanCancel:

    def test_fresh_sale_is_cancellable(self, db_session, sold_pain, admin_user):
        _, sale = sold_pain

        check = cancellation_service.can_cancel(sale.id, admin_user)

        assert check.allowed
        assert check.to_dict()["can_cancel"] is True

    def test_reports_instead_of_raising(self, db_session, sold_pain, admin_user, shop_user):
        _, sale = sold_pain

        assert cancellation_service.can_cancel(sale.id, shop_user).error == "Permission refusée"
        assert cancellation_service.can_cancel(9999, admin_user).error == "Vente introuvable"

        cancellation_service.cancel(sale.id, REASON, admin_user)
        assert cancellation_service.can_cancel(sale.id, admin_user).error == "Vente déjà annulée"


class TestListCancellations:

    def test_admin_only(self, db_session, shop_user):
        with pytest.raises(PermissionDenied):
            cancellation_service.list_cancellations(shop_user)

    def test_lists_records(self, db_session, sold_pain, admin_user):
        _, sale = sold_pain
        cancellation_service.cancel(sale.id, REASON, admin_user)

        records = cancellation_service.list_cancellations(admin_user)

        assert [r.ticket_number for r in records] == [sale.ticket_number]
