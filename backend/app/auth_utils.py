import base64
import binascii
import hashlib
import secrets
import time

# Tokens are unsigned and never expire; anyone able to base64-encode an email can act as that user.


def hash_password(password: str) -> str:
    digest = hashlib.sha256(password.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_password(password: str, stored_hash: str | None) -> bool:
    if not stored_hash:
        return False
    return secrets.compare_digest(hash_password(password), stored_hash)


def generate_token(email: str, now_ms: int | None = None) -> str:
    issued_at = now_ms if now_ms is not None else int(time.time() * 1000)
    return base64.b64encode(f"{email}:{issued_at}".encode("utf-8")).decode("ascii")


def verify_token(token: str | None) -> str | None:
    if not token:
        return None
    token = token.strip()
    token += "=" * (-len(token) % 4)
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    email = decoded.split(":", 1)[0].strip()
    return email or None


def normalize_email(email: str) -> str:
    return email.strip().lower()
