from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

# Argon2id with library defaults: memory-hard, random salt per hash
ph = PasswordHasher()


def hash_password(password: str) -> str:
    """
    Hash password using Argon2id.
    
    The returned string embeds the algorithm parameters and the salt,
    so two calls with the same password produce different hashes.
    Format: $argon2id$v=19$m=65536,t=3,p=4$salt$hash
    """
    return ph.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """
    Verify password against stored hash.
    
    Uses constant-time comparison internally. Returns False for a
    mismatch and for a malformed hash alike.
    """
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def needs_rehash(password_hash: str) -> bool:
    """True when the hash was produced with outdated parameters."""
    try:
        return ph.check_needs_rehash(password_hash)
    except InvalidHashError:
        return True
