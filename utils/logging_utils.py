from typing import Dict, Iterable


def mask_value(value):
    """Mask an email, a Stripe object id or any other identifier for log output."""
    if not isinstance(value, str):
        return value
    if "@" in value:  # email
        name, _, domain = value.partition("@")
        return (name[:2] + "***@" + domain) if name else "***@" + domain
    if "_" in value and value.split("_", 1)[0] in ("acct", "cus", "cs", "tr", "pi", "price", "prod"):
        prefix, _, rest = value.partition("_")
        return f"{prefix}_***{rest[-4:]}" if len(rest) > 4 else f"{prefix}_***"
    if len(value) > 12:
        return value[:4] + "..." + value[-4:]
    return "***"


def sanitize_payload(payload: Dict, allowed_keys: Iterable[str]) -> Dict:
    """Return a filtered copy of payload with only allowed keys and masked values."""
    return {key: mask_value(payload[key]) for key in allowed_keys if key in payload}
