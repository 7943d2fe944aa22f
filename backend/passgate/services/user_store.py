"""User store: identity lookup, password hashing and roles."""
from functools import lru_cache
import logging
from typing import Protocol

import bcrypt
from sqlalchemy.orm import Session

from passgate.config import Settings
from passgate.models.user import Role, User

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of a password.
BCRYPT_MAX_BYTES = 72
DEFAULT_ROLES = ("Admin", "User")


class WeakPasswordError(ValueError):
    """Raised when a password fails the store's policy."""

    def __init__(self, problems: list[str]):
        super().__init__("; ".join(problems))
        self.problems = problems


class UserStore(Protocol):
    """Identity collaborator used by the credential service."""

    def get_by_id(self, user_id: str) -> User | None: ...

    def get_by_email(self, email: str) -> User | None: ...

    def get_by_username(self, username: str) -> User | None: ...

    def create(self, *, full_name: str, email: str, username: str, password: str) -> User: ...

    def verify_password(self, user: User | None, password: str) -> bool: ...

    def get_roles(self, user: User) -> list[str]: ...

    def add_to_role(self, user: User, role_name: str) -> None: ...


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    try:
        encoded = plain_password.encode("utf-8")
    except UnicodeEncodeError:
        return False
    if len(encoded) > BCRYPT_MAX_BYTES:
        return False
    return bcrypt.checkpw(encoded, hashed_password.encode("utf-8"))


def get_password_hash(password: str, rounds: int = 12) -> str:
    """Hash a password."""
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


@lru_cache
def _dummy_hash(rounds: int) -> str:
    return get_password_hash("passgate-timing-equalizer", rounds=rounds)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class SqlUserStore:
    """SQLAlchemy-backed user store with a bcrypt password policy."""

    def __init__(
        self,
        db: Session,
        min_password_length: int = 6,
        require_digit: bool = True,
        hash_rounds: int = 12,
    ):
        self.db = db
        self.min_password_length = min_password_length
        self.require_digit = require_digit
        self.hash_rounds = hash_rounds

    @classmethod
    def from_settings(cls, db: Session, settings: Settings) -> "SqlUserStore":
        return cls(
            db,
            min_password_length=settings.password_min_length,
            require_digit=settings.password_require_digit,
            hash_rounds=settings.password_hash_rounds,
        )

    def get_by_id(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def get_by_username(self, username: str) -> User | None:
        return self.db.query(User).filter(User.username == username.strip()).first()

    def password_problems(self, password: str) -> list[str]:
        """Return the policy rules ``password`` breaks (empty when acceptable)."""
        problems = []
        if len(password) < self.min_password_length:
            problems.append(f"Password must be at least {self.min_password_length} characters.")
        try:
            encoded = password.encode("utf-8")
        except UnicodeEncodeError:
            problems.append("Password contains characters that cannot be encoded.")
        else:
            if len(encoded) > BCRYPT_MAX_BYTES:
                problems.append(f"Password must be at most {BCRYPT_MAX_BYTES} bytes.")
        if self.require_digit and not any(ch.isdigit() for ch in password):
            problems.append("Password must contain at least one digit.")
        return problems

    def create(self, *, full_name: str, email: str, username: str, password: str) -> User:
        """Create a user; raises WeakPasswordError if the password fails policy."""
        problems = self.password_problems(password)
        if problems:
            raise WeakPasswordError(problems)

        user = User(
            full_name=full_name.strip(),
            email=normalize_email(email),
            username=username.strip(),
            password_hash=get_password_hash(password, rounds=self.hash_rounds),
        )
        self.db.add(user)
        self.db.flush()
        return user

    def verify_password(self, user: User | None, password: str) -> bool:
        """Check ``password``; an unknown user still pays for one bcrypt comparison."""
        if user is None:
            verify_password(password, _dummy_hash(self.hash_rounds))
            return False
        return verify_password(password, user.password_hash)

    def get_roles(self, user: User) -> list[str]:
        return sorted(role.name for role in user.roles)

    def add_to_role(self, user: User, role_name: str) -> None:
        role = get_or_create_role(self.db, role_name)
        if role not in user.roles:
            user.roles.append(role)
        self.db.flush()


def get_or_create_role(db: Session, name: str) -> Role:
    role = db.query(Role).filter(Role.name == name).first()
    if role is None:
        role = Role(name=name)
        db.add(role)
        db.flush()
        logger.info(f"Created role: {name}")
    return role


def ensure_roles(db: Session, names=DEFAULT_ROLES) -> list[Role]:
    """Make sure the built-in roles exist."""
    return [get_or_create_role(db, name) for name in names]
