"""Unpadded base64url helpers used by the session token format."""

import base64


def b64url_encode(data):
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(text):
    # Strict: characters outside the alphabet, padding and unused trailing
    # bits all raise ValueError (binascii.Error), so one token has one spelling.
    if isinstance(text, bytes):
        text = text.decode("ascii")
    padded = text + "=" * (-len(text) % 4)
    data = base64.b64decode(padded, altchars=b"-_", validate=True)
    if b64url_encode(data) != text:
        raise ValueError("non-canonical base64url input")
    return data
