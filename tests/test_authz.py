from uuid import uuid4

import pytest

from app.core.errors import AccessDenied
from app.core.permissions import PermissionCode
from app.services import authz
from app.services.authz import AuthContext

from conftest import FakeResult, make_auth, make_facility, make_user


def test_lender_sees_every_facility_in_org():
    auth = make_auth("lender")
    assert auth.can_access_facility(make_facility(gp_user_id=uuid4()))
    assert auth.can_access_facility(make_facility(gp_user_id=None))


def test_gp_sees_only_owned_facilities():
    auth = make_auth("gp")
    assert auth.can_access_facility(make_facility(gp_user_id=auth.user_id))
    assert not auth.can_access_facility(make_facility(gp_user_id=uuid4()))


def test_no_cross_tenant_access_even_for_superuser():
    auth = AuthContext(org_id="acme", user_id=uuid4(), is_superuser=True)
    assert auth.can(PermissionCode.COVENANT_CHECK_DUE)
    assert not auth.can_access_facility(make_facility(org_id="globex"))


def test_require_raises_access_denied():
    with pytest.raises(AccessDenied, match="covenant.manage"):
        make_auth("lender").require(PermissionCode.COVENANT_MANAGE)


def test_system_context_has_no_user():
    auth = AuthContext.system("default")
    assert auth.user_id is None
    assert auth.is_system
    assert auth.can("covenant.check_due")


def test_context_is_immutable():
    auth = make_auth()
    with pytest.raises(AttributeError):
        auth.org_id = "other"


@pytest.mark.asyncio
async def test_build_auth_context_merges_role_permissions(fake_db):
    user = make_user()
    fake_db.on_execute(
        lambda _stmt: FakeResult(
            rows=[
                (["facility.view", "covenant.view"],),
                (["covenant.check", "not.a.permission"],),
            ]
        )
    )

    auth = await authz.build_auth_context(fake_db, user, "default")

    assert auth.permissions == frozenset({"facility.view", "covenant.view", "covenant.check"})
    assert auth.user_id == user.id
    assert not auth.is_superuser


@pytest.mark.asyncio
async def test_build_auth_context_for_foreign_org_is_empty(fake_db):
    user = make_user(org_id="acme")

    auth = await authz.build_auth_context(fake_db, user, "globex")

    assert auth.permissions == frozenset()
    assert fake_db.executed == []


@pytest.mark.asyncio
async def test_superuser_gets_every_permission(fake_db):
    user = make_user(is_superuser=True)

    auth = await authz.build_auth_context(fake_db, user, "default")

    assert auth.permissions == frozenset(PermissionCode.list_all())
