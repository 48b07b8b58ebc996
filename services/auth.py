"""Identity service: user accounts, JWT tokens and caller resolution."""
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from uuid import UUID
import os
from passlib.context import CryptContext
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from sqlalchemy import or_

from models.users import User
from schemas.auth import UserCreate, TokenPayload, Identity


# Configuration
SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-here-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 30
REFRESH_TOKEN_EXPIRE_DAYS = 7

# Password hashing with Argon2
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


class AuthService:
    """Service class for authentication operations."""

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash."""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password."""
        return pwd_context.hash(password)

    @staticmethod
    def _create_token(subject: Union[str, UUID], token_type: str, expires_delta: timedelta) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {
            "sub": str(subject),
            "exp": now + expires_delta,
            "iat": now,
            "type": token_type
        }
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def create_access_token(subject: Union[str, UUID], expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token."""
        return AuthService._create_token(
            subject, "access", expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        )

    @staticmethod
    def create_refresh_token(subject: Union[str, UUID]) -> str:
        """Create a JWT refresh token."""
        return AuthService._create_token(subject, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))

    @staticmethod
    def decode_token(token: str) -> Optional[TokenPayload]:
        """Decode and validate a JWT token."""
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
            return TokenPayload(**payload)
        except JWTError:
            return None

    @staticmethod
    def create_user(db: Session, user_data: UserCreate) -> User:
        """Create a new user."""
        db_user = User(
            email=user_data.email,
            username=user_data.username,
            hashed_password=AuthService.hash_password(user_data.password),
            full_name=user_data.full_name
        )

        db.add(db_user)
        db.commit()
        db.refresh(db_user)

        return db_user

    @staticmethod
    def get_user_by_login(db: Session, login: str) -> Optional[User]:
        """Get a user by username or email."""
        return db.query(User).filter(
            or_(User.username == login, User.email == login)
        ).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: UUID) -> Optional[User]:
        """Get a user by ID."""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def is_taken(db: Session, email: str, username: str) -> Optional[str]:
        """Return which unique field already exists, if any."""
        if db.query(User).filter(User.email == email).first():
            return "Email already registered"
        if db.query(User).filter(User.username == username).first():
            return "Username already taken"
        return None

    @staticmethod
    def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
        """Authenticate a user by username/email and password."""
        user = AuthService.get_user_by_login(db, username)
        if not user:
            return None
        if not AuthService.verify_password(password, user.hashed_password):
            return None
        return user

    @staticmethod
    def resolve_identity(db: Session, token: str, expected_type: str = "access") -> Optional[Identity]:
        """Resolve a bearer token to the caller's id and display name."""
        token_payload = AuthService.decode_token(token)
        if token_payload is None or token_payload.type != expected_type:
            return None

        try:
            user_id = UUID(token_payload.sub)
        except ValueError:
            return None

        user = AuthService.get_user_by_id(db, user_id)
        if user is None or not user.is_active:
            return None

        return Identity(user_id=str(user.id), display_name=user.display_name)
