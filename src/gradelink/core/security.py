# gradelink/core/security.py

import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Optional, Union
from jose import jwt
from passlib.context import CryptContext

from gradelink.core.config import settings

# ------------------------------------------------------------------------------
# 1. Password Hashing
#    - passlib's CryptContext with bcrypt. Plain-text passwords are never stored
#      or compared directly.
# ------------------------------------------------------------------------------

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Ambiguous characters (0/O, 1/l/I) are left out of generated secrets
_PASSWORD_ALPHABET = "".join(
    c for c in string.ascii_letters + string.digits if c not in "0O1lI"
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifies a plain-text password against a hashed password.

    :param plain_password: The password to verify.
    :param hashed_password: The stored hashed password.
    :return: True if the passwords match, False otherwise.
    """
    if not plain_password or not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hashes a plain-text password using bcrypt.

    :param password: The password to hash.
    :return: The hashed password string.
    """
    return pwd_context.hash(password)


def generate_password(length: Optional[int] = None) -> str:
    """
    Generates the initial login secret for students and teachers.
    It is shown to the caller once; only its hash is persisted.
    """
    length = length or settings.GENERATED_PASSWORD_LENGTH
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


# ------------------------------------------------------------------------------
# 2. JSON Web Token (JWT) Management
# ------------------------------------------------------------------------------

def create_access_token(subject: Union[str, Any], expires_delta: timedelta = None, claims: Optional[dict] = None) -> str:
    """
    Creates a new JWT access token.

    :param subject: Encoded in the 'sub' claim.
    :param expires_delta: Optional timedelta for token expiration. If None, uses default from settings.
    :param claims: Extra claims, e.g. the login role and tenant identifier.
    :return: The encoded JWT string.
    """
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = dict(claims or {})
    to_encode.update({
        "exp": expire,
        "sub": str(subject),
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decodes and verifies a JWT access token.

    :raises JWTError: For expired or tampered tokens; callers decide how to respond.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
