"""
Immutable request/response values handled by the edge router.

Bodies are plain bytes so they can be read any number of times while the
router decides whether to rewrite them. Headers use httpx.Headers, which is
case-insensitive and keeps repeated values.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

import httpx

HeaderInput = Union[httpx.Headers, Mapping[str, str], None]


@dataclass(frozen=True)
class EdgeRequest:
    """An inbound client request as seen by the edge."""
    method: str
    url: httpx.URL
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    @classmethod
    def build(
        cls,
        method: str,
        url: Union[str, httpx.URL],
        headers: HeaderInput = None,
        body: bytes = b"",
    ) -> "EdgeRequest":
        return cls(
            method=method.upper(),
            url=httpx.URL(url),
            headers=httpx.Headers(headers or {}),
            body=body,
        )

    @property
    def hostname(self) -> str:
        return self.url.host.lower()

    @property
    def path(self) -> str:
        return self.url.path

    @property
    def path_and_query(self) -> str:
        """Raw path plus query string, exactly as the client sent them."""
        return self.url.raw_path.decode("ascii")


@dataclass(frozen=True)
class EdgeResponse:
    """A response produced or relayed by the edge."""
    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    @classmethod
    def build(cls, status_code: int, headers: HeaderInput = None, body: bytes = b"") -> "EdgeResponse":
        return cls(status_code=status_code, headers=httpx.Headers(headers or {}), body=body)

    @classmethod
    def json_response(cls, status_code: int, payload: Any) -> "EdgeResponse":
        return cls.build(
            status_code,
            {"Content-Type": "application/json"},
            json.dumps(payload).encode("utf-8"),
        )

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)
