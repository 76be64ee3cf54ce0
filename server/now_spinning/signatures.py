"""Request signing for the two upstream protocols.

Discogs uses OAuth 1.0a with the PLAINTEXT method: the "signature" is the
consumer secret and token secret themselves, so confidentiality rests on TLS.
That is what Discogs accepts; it is not something to harden here.

Last.fm signs calls with an MD5 digest over the sorted parameters followed by
the shared secret. MD5 is dictated by the Last.fm API.
"""

from __future__ import annotations

import hashlib
import secrets
import time
from typing import Dict, Mapping, Optional
from urllib.parse import parse_qsl, quote


_UNRESERVED = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
_UNSIGNED_PARAMS = {"format", "api_sig"}


def _rfc3986(value: str) -> str:
    return quote(value, safe="-._~")


def plaintext_oauth1_signature(consumer_secret: str, token_secret: Optional[str] = None) -> str:
    return f"{_rfc3986(consumer_secret)}&{_rfc3986(token_secret or '')}"


def listening_api_signature(params: Mapping[str, str], shared_secret: str) -> str:
    keys = sorted(key for key in params if key not in _UNSIGNED_PARAMS)
    base = "".join(f"{key}{params[key]}" for key in keys) + shared_secret
    return hashlib.md5(base.encode("utf-8")).hexdigest()


def generate_random_string(length: int = 32) -> str:
    return "".join(secrets.choice(_UNRESERVED) for _ in range(length))


def parse_form_encoded(text: str) -> Dict[str, str]:
    return dict(parse_qsl(text.strip(), keep_blank_values=True))


def oauth1_params(
    consumer_key: str,
    consumer_secret: str,
    *,
    token: Optional[str] = None,
    token_secret: Optional[str] = None,
    extra: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    params = {
        "oauth_consumer_key": consumer_key,
        "oauth_nonce": generate_random_string(32),
        "oauth_signature_method": "PLAINTEXT",
        "oauth_timestamp": str(int(time.time())),
        "oauth_version": "1.0",
    }
    if token:
        params["oauth_token"] = token
    if extra:
        params.update(extra)
    params["oauth_signature"] = plaintext_oauth1_signature(consumer_secret, token_secret)
    return params


def oauth1_authorization_header(
    consumer_key: str, consumer_secret: str, token: str, token_secret: str
) -> str:
    params = oauth1_params(consumer_key, consumer_secret, token=token, token_secret=token_secret)
    # The PLAINTEXT signature is already percent-encoded; encoding it again breaks it.
    parts = [
        f'{key}="{value if key == "oauth_signature" else _rfc3986(value)}"'
        for key, value in params.items()
    ]
    return "OAuth " + ", ".join(parts)


def discogs_app_auth_header(consumer_key: str, consumer_secret: str) -> str:
    return f"Discogs key={consumer_key}, secret={consumer_secret}"
