import secrets
import string
import time

_ALPHABET = string.ascii_uppercase + string.digits

def generate_order_id(now_ms: int | None = None) -> str:
    """ORD-<epoch millis>-<5 random base36 chars>, e.g. ORD-1718000000000-K3Z9Q."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(5))
    return f"ORD-{now_ms}-{suffix}"
