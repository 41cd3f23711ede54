# estimator/webhooks/signature.py
"""Verification of signed payment callbacks.

The processor sends ``t=<unix ts>,v1=<hex digest>`` where the digest is
HMAC-SHA256 over ``"<ts>.<raw body>"`` keyed with the shared secret.
"""

import hashlib
import hmac
import time


def parse_header(header: str) -> tuple[str, list[str]]:
    timestamp = ''
    signatures = []
    for part in (header or '').split(','):
        key, _, value = part.strip().partition('=')
        if key == 't':
            timestamp = value
        elif key == 'v1':
            signatures.append(value)
    return timestamp, signatures


def compute_signature(payload: bytes, timestamp: str, secret: str) -> str:
    signed = timestamp.encode() + b'.' + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, header: str, secret: str,
                     tolerance: int = 300, now: float | None = None) -> bool:
    timestamp, signatures = parse_header(header)
    if not secret or not timestamp or not signatures:
        return False
    try:
        ts = int(timestamp)
    except ValueError:
        return False
    now = time.time() if now is None else now
    if tolerance and abs(now - ts) > tolerance:
        return False
    expected = compute_signature(payload, timestamp, secret)
    return any(hmac.compare_digest(expected, sig) for sig in signatures)
