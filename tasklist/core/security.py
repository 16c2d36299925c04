import bcrypt

from tasklist.core.errors import InternalFailure

# bcrypt only looks at the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


def password_fits(password: str) -> bool:
    return len(password.encode("utf-8")) <= BCRYPT_MAX_BYTES


def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a plaintext password with a fresh salt and the given cost factor."""
    try:
        if not password_fits(password):
            raise ValueError(f"password longer than {BCRYPT_MAX_BYTES} bytes")
        salt = bcrypt.gensalt(rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("ascii")
    except (TypeError, ValueError) as e:
        raise InternalFailure(f"password hashing failed: {e}") from e


def verify_password(password: str, password_hash: str) -> bool:
    """
    Check a plaintext password against a stored hash.

    Returns False on a mismatch. A password too long to have been hashed
    never matches. A stored hash bcrypt cannot parse raises InternalFailure,
    so callers can tell a wrong password from a broken record.
    """
    try:
        if not password_fits(password):
            # still parse the hash so a broken record is reported
            bcrypt.checkpw(b"", password_hash.encode("ascii"))
            return False
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except (TypeError, ValueError) as e:
        raise InternalFailure(f"password verification failed: {e}") from e
