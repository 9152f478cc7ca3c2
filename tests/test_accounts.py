import pytest

from libronova.accounts import hash_password, new_user, verify_password
from libronova.errors import DuplicateUsernameError, InvalidCredentialsError, PermissionDeniedError
from libronova.user import UserRole, UserStatus


@pytest.fixture
def admin(accounts, settings):
    return accounts.login(settings.admin_username, settings.admin_password)


def test_password_hashing():
    stored = hash_password("s3cret")
    assert "s3cret" not in stored
    assert verify_password("s3cret", stored)
    assert not verify_password("wrong", stored)
    assert not verify_password("s3cret", "garbage")


def test_new_user_defaults():
    user = new_user("clerk", "pass1234")
    assert user.role is UserRole.ASSISTANT
    assert user.status is UserStatus.ACTIVE
    assert user.user_id is None
    assert "password_hash" not in user.to_dict()


def test_bootstrap_admin_created_once(accounts, settings, admin):
    assert admin.is_admin
    assert accounts.ensure_admin(settings) is None
    assert len(accounts.list_users()) == 1


def test_login_rejects_bad_password(accounts, settings):
    with pytest.raises(InvalidCredentialsError, match="Invalid username or password"):
        accounts.login(settings.admin_username, "nope")
    with pytest.raises(InvalidCredentialsError):
        accounts.login("ghost", "whatever")


def test_admin_creates_assistant(accounts, admin):
    user = accounts.create_user(admin, "clerk_1", "pass1234")

    assert user.user_id is not None
    assert accounts.login("clerk_1", "pass1234").role is UserRole.ASSISTANT


def test_assistant_cannot_create_users(accounts, admin):
    clerk = accounts.create_user(admin, "clerk_1", "pass1234")

    with pytest.raises(PermissionDeniedError):
        accounts.create_user(clerk, "clerk_2", "pass1234")


def test_duplicate_username(accounts, admin):
    accounts.create_user(admin, "clerk_1", "pass1234")
    with pytest.raises(DuplicateUsernameError):
        accounts.create_user(admin, "clerk_1", "other-pass")


@pytest.mark.parametrize("username, password", [("ab", "pass1234"), ("bad name", "pass1234"), ("clerk", "123")])
def test_credential_rules(accounts, admin, username, password):
    with pytest.raises(ValueError):
        accounts.create_user(admin, username, password)


def test_inactive_user_cannot_log_in(accounts, admin):
    clerk = accounts.create_user(admin, "clerk_1", "pass1234")
    assert accounts.set_status(admin, clerk.user_id, UserStatus.INACTIVE)

    with pytest.raises(InvalidCredentialsError, match="User account is inactive"):
        accounts.login("clerk_1", "pass1234")
