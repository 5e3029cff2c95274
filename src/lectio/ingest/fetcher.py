"""Polite HTTP fetcher for commentary pages.

Limits:
- Allowed URL schemes: https:// and http:// only.
- Content-Type whitelist: text/html and text/plain only.
- Max response body: 5 MB.
- Max redirects: 3.
- A fixed pause (``delay_seconds``) follows every HTTP exchange, success or
  failure, before control returns to the caller.
"""

from __future__ import annotations

import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Callable

logger = logging.getLogger(__name__)

USER_AGENT = "Lectio/0.1 (Bible study assistant; commentary indexer)"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_MAX_REDIRECTS = 3
_ALLOWED_SCHEMES = {"https", "http"}
_ALLOWED_CONTENT_TYPES = {"text/html", "text/plain"}


class FetchError(RuntimeError):
    """Raised when a page cannot be fetched (network, status, type, or size)."""


class Fetcher:
    """Fetch pages one at a time with a politeness delay.

    Args:
        timeout: Connect + read timeout in seconds.
        delay_seconds: Pause after each exchange; 0 disables it.
        user_agent: Identifying User-Agent header.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        timeout: int = 30,
        delay_seconds: float = 1.0,
        user_agent: str = USER_AGENT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout = timeout
        self.delay_seconds = delay_seconds
        self.user_agent = user_agent
        self._sleep = sleep

    def fetch(self, url: str) -> str:
        """Return the decoded body of *url*.

        Raises:
            FetchError: On any transport error, non-2xx status, disallowed
                Content-Type, or oversize body.
        """
        self._validate_scheme(url)
        try:
            body = self._fetch(url)
        finally:
            if self.delay_seconds > 0:
                self._sleep(self.delay_seconds)
        return body

    @staticmethod
    def _validate_scheme(url: str) -> None:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in _ALLOWED_SCHEMES:
            raise FetchError(
                f"Unsupported URL scheme '{parsed.scheme}'. Only https:// and http:// are allowed."
            )

    def _fetch(self, url: str) -> str:
        request = urllib.request.Request(url, headers={"User-Agent": self.user_agent})
        opener = urllib.request.build_opener(_LimitedRedirectHandler(_MAX_REDIRECTS))

        try:
            response = opener.open(request, timeout=self.timeout)
        except urllib.error.HTTPError as exc:
            raise FetchError(f"Failed to fetch '{url}': HTTP {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise FetchError(f"Failed to fetch '{url}': {exc}") from exc

        with response:
            raw_ct = response.headers.get("Content-Type", "text/html")
            ct = raw_ct.split(";")[0].strip().lower()
            if ct not in _ALLOWED_CONTENT_TYPES:
                raise FetchError(
                    f"Unsupported Content-Type '{ct}' for '{url}'. "
                    f"Accepted: {', '.join(sorted(_ALLOWED_CONTENT_TYPES))}"
                )

            body = response.read(_MAX_BYTES + 1)
            if len(body) > _MAX_BYTES:
                raise FetchError(
                    f"Response body exceeds {_MAX_BYTES // (1024 * 1024)} MB limit for '{url}'."
                )

        charset = _charset(raw_ct)
        logger.debug("Fetched %s (%d bytes)", url, len(body))
        try:
            return body.decode(charset, errors="replace")
        except LookupError:
            return body.decode("utf-8", errors="replace")


def _charset(content_type: str) -> str:
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            return value.strip().strip("\"'")
    return "utf-8"


class _LimitedRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Raise FetchError after more than *max_redirects* redirects."""

    def __init__(self, max_redirects: int) -> None:
        self._max_redirects = max_redirects
        self._count = 0

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._count += 1
        if self._count > self._max_redirects:
            raise FetchError(
                f"Too many redirects (>{self._max_redirects}) for '{req.full_url}'."
            )
        return super().redirect_request(req, fp, code, msg, headers, newurl)
