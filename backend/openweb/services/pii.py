from __future__ import annotations


def mask_email(email: str | None) -> str | None:
    raw = (email or "").strip()
    if not raw or "@" not in raw:
        return email
    local, _, domain = raw.partition("@")
    if not local or not domain:
        return email
    if len(local) <= 1:
        masked_local = "*"
    else:
        masked_local = f"{local[0]}{'*' * min(len(local) - 1, 8)}"
    return f"{masked_local}@{domain}"


def client_address(forwarded_for: str | None, peer: str | None) -> str:
    """First hop of X-Forwarded-For when present, else the socket peer."""
    first_hop = (forwarded_for or "").split(",", 1)[0].strip()
    return first_hop or (peer or "").strip() or "unknown"
