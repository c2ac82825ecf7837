"""Password hashing utilities.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks.
The work factor (rounds=12) takes ~100ms per hash on modern hardware,
which is why the async helpers push the work onto a worker thread
instead of stalling the event loop for every other request.

Hashes written by the previous Node service (bcryptjs, "$2a$"/"$2b$")
verify unchanged.
"""

import asyncio

import bcrypt

BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 6

# Compared against when the email is unknown, so a miss costs the same
# bcrypt work as a hit.
_DUMMY_HASH = bcrypt.hashpw(b"usabo-timing-equalizer", bcrypt.gensalt(rounds=BCRYPT_ROUNDS))


def hash_password(password: str) -> str:
    """Hash a password with bcrypt.

    Passwords are truncated to 72 bytes (bcrypt's limit).
    """
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash (constant-time inside bcrypt)."""
    try:
        pw_bytes = password.encode("utf-8")[:72]
        hash_bytes = password_hash.encode("utf-8")
        return bcrypt.checkpw(pw_bytes, hash_bytes)
    except (ValueError, TypeError):
        return False


def burn_verification(password: str) -> None:
    """Spend one bcrypt check on a throwaway hash. Result is ignored."""
    bcrypt.checkpw(password.encode("utf-8")[:72], _DUMMY_HASH)


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, password_hash)


async def burn_verification_async(password: str) -> None:
    await asyncio.to_thread(burn_verification, password)
