import secrets
from itsdangerous import BadSignature, URLSafeTimedSerializer
from roomchat.settings import settings
from typing import Optional

SESSION_COOKIE_NAME = "session_id"
SESSION_MAX_AGE_SECONDS = settings.SESSION_MAX_AGE_DAYS * 24 * 60 * 60

# Signs the session id handed out as a cookie
serializer = URLSafeTimedSerializer(settings.SESSION_SECRET_KEY, salt="roomchat-session")

def create_session_id() -> str:
    return secrets.token_hex(16)

def sign_session_id(session_id: str) -> str:
    return serializer.dumps(session_id)

def unsign_session_id(token: str) -> Optional[str]:
    try:
        # Expired signatures raise SignatureExpired, a BadSignature subclass
        return serializer.loads(token, max_age=SESSION_MAX_AGE_SECONDS)
    except BadSignature:
        return None
