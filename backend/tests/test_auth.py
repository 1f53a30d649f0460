"""
Accounts, sessions and the role permission map.
"""

from datetime import timedelta

import pytest

from bakery.permissions import get_role_permissions, has_permission, has_role
from bakery.services import auth_service, session_service
from bakery.services.auth_service import PasswordValidationError
from bakery.time_utils import utcnow


class TestPasswords:

    @pytest.mark.parametrize("password", ["court1", "sanschiffre", "12345678"])
    def test_weak_passwords_are_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_round_trip(self, app):
        hashed = auth_service.hash_password("Password123")

        assert auth_service.verify_password("Password123", hashed)
        assert not auth_service.verify_password("Password124", hashed)


class TestUsers:

    def test_create_and_authenticate(self, db_session):
        user = auth_service.create_user("marie", "marie@boulangerie.test", "Croissant42", "employe_boutique")

        assert auth_service.authenticate("marie", "Croissant42").id == user.id
        assert auth_service.authenticate("marie@boulangerie.test", "Croissant42").id == user.id
        assert auth_service.authenticate("marie", "Croissant43") is None

    def test_duplicate_username(self, db_session, admin_user):
        with pytest.raises(ValueError):
            auth_service.create_user("admin", "autre@boulangerie.test", "Password123", "admin")

    def test_unknown_role(self, db_session):
        with pytest.raises(ValueError):
            auth_service.create_user("paul", "paul@boulangerie.test", "Password123", "patron")

    def test_deactivated_user_cannot_log_in(self, db_session, shop_user):
        auth_service.deactivate_user(shop_user.id)

        assert auth_service.authenticate(shop_user.username, "Password123") is None


class TestSessions:

    def test_live_token_resolves_user(self, db_session, shop_user):
        _, token = session_service.create_session(shop_user.id)

        assert session_service.validate_session(token).id == shop_user.id

    def test_idle_session_is_revoked(self, db_session, shop_user):
        session, token = session_service.create_session(shop_user.id)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db_session.commit()

        assert session_service.validate_session(token) is None
        db_session.refresh(session)
        assert session.is_revoked
        assert session.revoked_reason == "Idle timeout"

    def test_expired_session(self, db_session, shop_user):
        session, token = session_service.create_session(shop_user.id)
        session.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert session_service.validate_session(token) is None

    def test_deactivation_ends_sessions(self, db_session, shop_user):
        _, token = session_service.create_session(shop_user.id)
        auth_service.deactivate_user(shop_user.id)

        assert session_service.validate_session(token) is None

    def test_revoke(self, db_session, shop_user):
        _, token = session_service.create_session(shop_user.id)

        assert session_service.revoke_session(token)
        assert not session_service.revoke_session(token)
        assert session_service.validate_session(token) is None


class TestRolePermissions:

    def test_admin_has_everything(self, db_session, admin_user):
        assert has_permission(admin_user, "CANCEL_SALE")
        assert has_permission(admin_user, "SET_PRICES")
        assert has_role(admin_user, ("admin",))

    def test_shop_employee_sells_but_does_not_transfer(self, db_session, shop_user):
        assert has_permission(shop_user, "CREATE_SALE")
        assert not has_permission(shop_user, "TRANSFER_STOCK")
        assert not has_permission(shop_user, "CANCEL_SALE")

    def test_production_employee_produces(self, db_session, production_user):
        assert has_permission(production_user, "CREATE_PRODUCTION")
        assert not has_permission(production_user, "MANAGE_RECIPES")

    def test_unknown_role_has_no_permissions(self):
        assert get_role_permissions("stagiaire") == set()

    def test_anonymous(self):
        assert not has_role(None, ("admin",))
        assert not has_permission(None, "VIEW_STOCK")
