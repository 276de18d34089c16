import hashlib
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.core.config import get_settings


def get_session_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="clockwork-session",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_session_token(payload: dict[str, Any]) -> str:
    """Sign a session payload; expiry is enforced on load."""
    serializer = get_session_serializer()
    return serializer.dumps(payload)


def load_session_token(token: str) -> dict[str, Any] | None:
    serializer = get_session_serializer()
    try:
        return serializer.loads(token, max_age=get_settings().session_max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None
