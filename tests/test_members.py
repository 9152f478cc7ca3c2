import pytest

from libronova.errors import DuplicateEmailError, EntityInUseError


def test_create_and_find_member(members):
    member = members.create_member("Ana Torres", "  Ana@Example.com ", phone="555-0101", address="Calle 1")

    assert member.member_id is not None
    assert member.email == "ana@example.com"
    assert members.find_member(member.member_id).name == "Ana Torres"
    assert members.find_by_email("ANA@example.com").member_id == member.member_id


def test_duplicate_email_rejected(members, member):
    with pytest.raises(DuplicateEmailError, match="Email already registered"):
        members.create_member("Someone Else", "ana@example.com")


@pytest.mark.parametrize("name, email, phone, message", [
    ("", "x@example.com", None, "Member name cannot be empty"),
    ("Name", "not-an-email", None, "Invalid email format"),
    ("Name", "x@example.com", "abc", "Invalid phone format"),
])
def test_member_validation(members, name, email, phone, message):
    with pytest.raises(ValueError, match=message):
        members.create_member(name, email, phone=phone)


def test_update_member(members, member):
    updated = members.update_member(member.member_id, name="Ana T. Ruiz", phone="")

    assert updated.name == "Ana T. Ruiz"
    assert updated.phone is None
    assert members.find_member(member.member_id).email == "ana@example.com"


def test_update_member_email_must_stay_unique(members, member):
    other = members.create_member("Luis Vega", "luis@example.com")

    with pytest.raises(DuplicateEmailError):
        members.update_member(other.member_id, email="ana@example.com")
    # Keeping one's own email is fine
    assert members.update_member(member.member_id, email="ana@example.com") is not None


def test_update_missing_member(members):
    assert members.update_member(999, name="Nobody") is None


def test_deactivate_and_list(members, member):
    other = members.create_member("Luis Vega", "luis@example.com")
    assert members.deactivate_member(member.member_id) is True

    active = members.list_members(active_only=True)
    assert [m.member_id for m in active] == [other.member_id]
    assert len(members.list_members()) == 2
    assert members.activate_member(member.member_id) is True
    assert members.activate_member(999) is False


def test_delete_member(members, member):
    assert members.delete_member(member.member_id) is True
    assert members.find_member(member.member_id) is None
    assert members.delete_member(member.member_id) is False


def test_delete_member_with_loans_is_refused(members, lib, circulation, member):
    lib.create_book("111", "Borrowed", "Someone")
    loan = circulation.create_loan("111", member.member_id).loan
    circulation.return_loan(loan.loan_id)

    with pytest.raises(EntityInUseError):
        members.delete_member(member.member_id)
    assert members.find_member(member.member_id) is not None
