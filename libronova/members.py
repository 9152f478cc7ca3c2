import logging
import sqlite3
from typing import List, Optional

from libronova.database import Database
from libronova.errors import DatabaseError, DuplicateEmailError, EntityInUseError, translate_db_errors
from libronova.logging_config import log_request
from libronova.member import Member
from libronova.repositories import MemberRepository
from libronova.validators import ContactValidator, TextValidator

logger = logging.getLogger(__name__)


class MemberService:
    """Member registration and maintenance. Email addresses are unique."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self.members = MemberRepository(db)

    def create_member(self, name: str, email: str, phone: Optional[str] = None,
                      address: Optional[str] = None) -> Member:
        log_request(logger, "POST", "/api/members")
        member = Member(name=TextValidator.sanitize_text(name), email=email, phone=phone, address=address)
        self._validate(member)
        try:
            if self.members.exists_by_email(member.email):
                raise DuplicateEmailError(f"Email already registered: {member.email}")
            self.members.create(member)
        except sqlite3.IntegrityError as e:
            raise DuplicateEmailError(f"Email already registered: {member.email}") from e
        except sqlite3.Error as e:
            logger.error(f"Error creating member: {e}")
            raise DatabaseError("Error creating member") from e
        logger.info(f"New member created: {member.email}")
        return member

    @translate_db_errors("Error retrieving members")
    def list_members(self, active_only: bool = False) -> List[Member]:
        return self.members.find_all_active() if active_only else self.members.find_all()

    @translate_db_errors("Error finding member")
    def find_member(self, member_id: int) -> Optional[Member]:
        return self.members.find_by_id(member_id)

    @translate_db_errors("Error finding member")
    def find_by_email(self, email: str) -> Optional[Member]:
        return self.members.find_by_email(email)

    def update_member(self, member_id: int, *, name: Optional[str] = None, email: Optional[str] = None,
                      phone: Optional[str] = None, address: Optional[str] = None) -> Optional[Member]:
        """Update contact details. Returns the updated member or None if not found."""
        log_request(logger, "PATCH", f"/api/members/{member_id}")
        try:
            member = self.members.find_by_id(member_id)
            if member is None:
                return None
            if name is not None and name.strip():
                member.name = TextValidator.sanitize_text(name)
            if email is not None and email.strip():
                member.email = email.strip().lower()
            if phone is not None:
                member.phone = phone.strip() or None
            if address is not None:
                member.address = address.strip() or None
            self._validate(member)
            if self.members.exists_by_email(member.email, exclude_id=member_id):
                raise DuplicateEmailError(f"Email already registered: {member.email}")
            self.members.update(member)
        except sqlite3.IntegrityError as e:
            raise DuplicateEmailError(f"Email already registered: {member.email}") from e
        except sqlite3.Error as e:
            logger.error(f"Error updating member {member_id}: {e}")
            raise DatabaseError("Error updating member") from e
        logger.info(f"Member updated: {member.email}")
        return member

    def delete_member(self, member_id: int) -> bool:
        """Hard delete. Refused while any loan row still references the member."""
        log_request(logger, "DELETE", f"/api/members/{member_id}")
        try:
            deleted = self.members.delete(member_id)
        except sqlite3.IntegrityError as e:
            logger.warning(f"Refused to delete member {member_id}: loans reference it")
            raise EntityInUseError(
                f"Member {member_id} has loan records and cannot be deleted; deactivate them instead."
            ) from e
        except sqlite3.Error as e:
            raise DatabaseError("Error deleting member") from e
        if deleted:
            logger.info(f"Member deleted: ID {member_id}")
        return deleted

    def activate_member(self, member_id: int) -> bool:
        return self._set_active(member_id, True)

    def deactivate_member(self, member_id: int) -> bool:
        return self._set_active(member_id, False)

    @translate_db_errors("Error changing member status")
    def _set_active(self, member_id: int, active: bool) -> bool:
        log_request(logger, "PATCH", f"/api/members/{member_id}/{'activate' if active else 'deactivate'}")
        changed = self.members.set_active(member_id, active)
        if changed:
            logger.info(f"Member {'activated' if active else 'deactivated'}: ID {member_id}")
        return changed

    @staticmethod
    def _validate(member: Member) -> None:
        if TextValidator.is_blank(member.name):
            raise ValueError("Member name cannot be empty")
        if TextValidator.is_blank(member.email):
            raise ValueError("Member email cannot be empty")
        if not ContactValidator.is_valid_email(member.email):
            raise ValueError("Invalid email format")
        if member.phone and not ContactValidator.is_valid_phone(member.phone):
            raise ValueError("Invalid phone format")
