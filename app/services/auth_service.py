from datetime import datetime, timedelta
from typing import List
import hashlib
import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundError, ValidationError
from ..core.security import (
    REFRESH_TOKEN, AuthenticationError, UserRole, create_token_pair,
    get_password_hash, verify_password, verify_token
)
from ..models.doctor import Doctor
from ..models.user import RefreshToken, User
from ..schemas.auth import TokenResponse, UserLogin, UserRegister, UserResponse

logger = logging.getLogger(__name__)

MAX_FAILED_LOGINS = 5
LOCKOUT_MINUTES = 30

def _token_hash(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()

class AuthService:
    """Accounts, logins and refresh token rotation."""

    def __init__(self, db: Session):
        self.db = db

    def register_user(self, user_data: UserRegister) -> User:
        """Create a patient or doctor account; doctors also get a profile."""
        if self.db.query(User).filter(User.email == user_data.email).first():
            raise ValidationError("Email already registered", field="email")

        user = User(
            email=user_data.email,
            password_hash=get_password_hash(user_data.password),
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            phone=user_data.phone,
            role=user_data.role,
            is_active=True,
            is_verified=False
        )
        self.db.add(user)

        if user_data.role == UserRole.DOCTOR:
            # No time slots yet, so not bookable until the doctor adds some
            self.db.flush()
            self.db.add(Doctor(user_id=user.id, is_available=True))

        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Registered {user.role.value} user {user.id}")
        return user

    def authenticate_user(self, login_data: UserLogin) -> TokenResponse:
        user = self.db.query(User).filter(User.email == login_data.email).first()
        if not user:
            raise AuthenticationError("Invalid email or password")

        if user.locked_until and user.locked_until > datetime.utcnow():
            raise HTTPException(
                status_code=status.HTTP_423_LOCKED,
                detail="Account is temporarily locked"
            )

        if not verify_password(login_data.password, user.password_hash):
            self._handle_failed_login(user)
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = datetime.utcnow()

        return self._issue_tokens(user)

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Exchange a live refresh token for a new pair; the old one is revoked."""
        token_payload = verify_token(refresh_token)
        if not token_payload or token_payload.token_type != REFRESH_TOKEN:
            raise AuthenticationError("Invalid refresh token")

        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == _token_hash(refresh_token),
            RefreshToken.is_revoked == False,  # noqa: E712
            RefreshToken.expires_at > datetime.utcnow()
        ).first()
        if not stored_token:
            raise AuthenticationError("Invalid or expired refresh token")

        user = self.db.query(User).filter(User.id == token_payload.user_id).first()
        if not user or not user.is_active:
            raise AuthenticationError("User not found or inactive")

        return self._issue_tokens(user)

    def logout_user(self, refresh_token: str) -> bool:
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == _token_hash(refresh_token)
        ).first()
        if not stored_token:
            return False

        stored_token.is_revoked = True
        self.db.commit()
        return True

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise ValidationError("Current password is incorrect", field="current_password")

        user.password_hash = get_password_hash(new_password)
        self.db.commit()
        logger.info(f"User {user.id} changed their password")

    def list_users(self, skip: int = 0, limit: int = 10) -> List[User]:
        return self.db.query(User).order_by(User.id).offset(skip).limit(limit).all()

    def set_user_active(self, user_id: int, is_active: bool) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")

        user.is_active = is_active
        self.db.commit()
        logger.info(f"User {user_id} is_active={is_active}")
        return user

    def _issue_tokens(self, user: User) -> TokenResponse:
        tokens = create_token_pair(user.id, user.email, user.role)
        self._store_refresh_token(user.id, tokens.refresh_token)
        self.db.commit()

        return TokenResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            user=UserResponse.from_orm(user)
        )

    def _handle_failed_login(self, user: User):
        """Count a failed login and lock the account after repeated failures."""
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

        if user.failed_login_attempts >= MAX_FAILED_LOGINS:
            user.locked_until = datetime.utcnow() + timedelta(minutes=LOCKOUT_MINUTES)
            logger.warning(f"Locked user {user.id} after {user.failed_login_attempts} failed logins")

        self.db.commit()

    def _store_refresh_token(self, user_id: int, refresh_token: str):
        token_payload = verify_token(refresh_token)
        expires_at = (
            datetime.utcfromtimestamp(token_payload.exp)
            if token_payload and token_payload.exp
            else datetime.utcnow() + timedelta(days=7)
        )

        # One live refresh token per user
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id
        ).update({"is_revoked": True})

        self.db.add(RefreshToken(
            user_id=user_id,
            token_hash=_token_hash(refresh_token),
            expires_at=expires_at
        ))
