"""Cache/dedup key derivation.

Two requests are identical iff their :class:`CacheKey` values are equal:
same method, same fully-resolved URL, same canonical body. Headers are not
part of the key; calls whose responses vary by header must disable caching.

Bodies are canonicalized with ``json.dumps(sort_keys=True)`` so dicts built
in different insertion orders map to the same key. Structures that JSON
cannot order deterministically (sets, arbitrary objects) must be converted
by the caller, or passed through a custom ``key_fn`` on the client;
otherwise identical requests will simply miss.
"""

import hashlib
import json
from typing import Any, NamedTuple, Union
from urllib.parse import urlsplit

from .types import RequestDescriptor


class CacheKey(NamedTuple):
    method: str
    url: str
    body: Union[str, None]

    @property
    def digest(self) -> str:
        raw = "|".join([self.method, self.url, self.body or ""])
        return hashlib.sha256(raw.encode()).hexdigest()


def canonical_body(body: Any) -> Union[str, None]:
    if body is None:
        return None
    if isinstance(body, bytes):
        return "b:" + hashlib.sha256(body).hexdigest()
    if isinstance(body, str):
        return "s:" + body
    return "j:" + json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)


def resolve_url(base_url: Union[str, None], url: str) -> str:
    """Join a base-relative path onto `base_url`; absolute URLs pass through."""
    if urlsplit(url).scheme or not base_url:
        return url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def make_key(descriptor: RequestDescriptor, base_url: Union[str, None] = None) -> CacheKey:
    return CacheKey(
        method=descriptor.method,
        url=resolve_url(base_url, descriptor.url),
        body=canonical_body(descriptor.body),
    )
