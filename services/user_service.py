"""
User records and their credentials.

The password hash is only ever written by create_user and change_password.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from models.db_storage import DBStorage
from models.role import Role
from models.user import User
from utils.result import AuthError, Err, Ok, Result
from utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)

EMAIL_TAKEN = AuthError(400, "BAD_REQUEST", "User with this email already exists")
USER_NOT_FOUND = AuthError(404, "NOT_FOUND", "User not found")
WRONG_PASSWORD = AuthError(401, "UNAUTHORIZED", "Current password is incorrect")


class UserService:
    def __init__(self, storage: DBStorage):
        self.storage = storage

    def find_by_email(self, email: str) -> Optional[User]:
        session = self.storage.get_session()
        return session.query(User).filter(User.email == email).first()

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.storage.get(User, user_id)

    def create_user(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: Role = Role.USER,
        commit: bool = True,
    ) -> Result[User, AuthError]:
        """Create a user; Err(EMAIL_TAKEN) when the email is already registered."""
        if self.find_by_email(email) is not None:
            return Err(EMAIL_TAKEN)

        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        self.storage.new(user)
        try:
            if commit:
                self.storage.save()
            else:
                self.storage.get_session().flush()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            self.storage.rollback()
            return Err(EMAIL_TAKEN)
        return Ok(user)

    def change_password(
        self, user_id: str, current_password: str, new_password: str, commit: bool = True
    ) -> Result[User, AuthError]:
        user = self.find_by_id(user_id)
        if user is None:
            return Err(USER_NOT_FOUND)
        if not verify_password(current_password, user.password_hash):
            return Err(WRONG_PASSWORD)
        user.password_hash = hash_password(new_password)
        if commit:
            self.storage.save()
        logger.info("Password changed for user %s", user.id)
        return Ok(user)

    def set_role(self, user_id: str, role: Role, commit: bool = True) -> Result[User, AuthError]:
        user = self.find_by_id(user_id)
        if user is None:
            return Err(USER_NOT_FOUND)
        previous = user.role
        user.role = role
        if commit:
            self.storage.save()
        logger.info("Role of user %s changed from %s to %s", user.id, previous.value, role.value)
        return Ok(user)

    def list_users(self, page: int, limit: int) -> Tuple[List[User], int]:
        session = self.storage.get_session()
        query = session.query(User)
        total = query.count()
        rows = (
            query.order_by(User.last_name.asc(), User.first_name.asc(), User.id.asc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total
