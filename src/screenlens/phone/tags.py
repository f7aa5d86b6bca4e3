"""Phone-number tagging service client (best-effort).

POSTs ``{"appkey": ..., "phone": ...}`` to the tagging endpoint with
``?version=1.0``. Any failure (network, non-2xx, business code other than
"10000", malformed body) yields None: lookups never surface errors.

The request signing scheme is not implemented. The Authorization header is a
placeholder in the ``bce-auth-v1`` shape built from the access key, which the
live service rejects; point ``phone_tags.endpoint`` at a compatible service
that does not require signing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

from screenlens.config import PhoneTagsCfg

logger = logging.getLogger(__name__)

_SUCCESS_CODE = "10000"
_API_VERSION = "1.0"
_MAX_BYTES = 1024 * 1024


@dataclass(frozen=True)
class PhoneTag:
    """Tag information for one number. All fields are optional."""

    code: int | None = None
    code_type: str | None = None
    province: str | None = None

    def describe(self) -> str:
        return f"号码服务：{self.code_type or '暂无标记'} · 归属地：{self.province or '未知'}"


def parse_tag_response(payload: dict[str, Any]) -> PhoneTag | None:
    """Build a PhoneTag from a decoded response body, or None if it is not a hit."""
    if str(payload.get("code")) != _SUCCESS_CODE:
        return None
    result = payload.get("result")
    if not isinstance(result, dict):
        return None
    location = result.get("location") or {}
    remark = result.get("remark_types") or {}
    code = remark.get("code")
    return PhoneTag(
        code=int(code) if code is not None else None,
        code_type=remark.get("code_type"),
        province=location.get("province"),
    )


class PhoneTagLookupClient:
    """Looks up tagging information for phone numbers."""

    def __init__(self, config: PhoneTagsCfg | None = None) -> None:
        self._config = config if config is not None else PhoneTagsCfg()

    @property
    def request_url(self) -> str:
        query = urllib.parse.urlencode({"version": _API_VERSION})
        return f"{self._config.endpoint}?{query}"

    async def query_tag(self, phone_number: str) -> PhoneTag | None:
        """Return the tag for *phone_number*, or None (blank input, no hit, failure)."""
        number = phone_number.strip()
        if not number:
            return None
        try:
            payload = await asyncio.to_thread(self._post, number)
        except (urllib.error.URLError, OSError, ValueError) as exc:
            logger.debug("Phone tag lookup for %s failed: %s", number, exc)
            return None
        if payload is None:
            return None
        try:
            return parse_tag_response(payload)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.debug("Unexpected phone tag payload for %s: %s", number, exc)
            return None

    def _post(self, number: str) -> dict[str, Any] | None:
        body = json.dumps({"appkey": self._config.app_key, "phone": number}).encode("utf-8")
        request = urllib.request.Request(
            self.request_url,
            data=body,
            method="POST",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"bce-auth-v1/{self._config.access_key}/dummy/3600//",
            },
        )
        # HTTPError (non-2xx) is a URLError and propagates to query_tag.
        with urllib.request.urlopen(request, timeout=self._config.timeout) as response:
            raw = response.read(_MAX_BYTES)
        payload = json.loads(raw.decode("utf-8"))
        if not isinstance(payload, dict):
            logger.debug("Phone tag response is not an object: %r", payload)
            return None
        return payload
