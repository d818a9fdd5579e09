"""Blocking HTTP transport over a ``requests.Session``."""

from __future__ import annotations

import logging
from collections import namedtuple
from typing import Optional

import requests

from .exceptions import TransportError
from .request_builder import ApiRequest

_logger = logging.getLogger(__name__)

HttpResponse = namedtuple("HttpResponse", ["status_code", "content", "headers", "url"])


class Transport:
    """Send an ``ApiRequest`` and hand back status, headers and raw body.

    One request per call: no retries and no timeout beyond ``timeout``
    (``None`` keeps the requests default of waiting indefinitely).
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    def send(self, request: ApiRequest) -> HttpResponse:
        _logger.debug("%s %s", request.method, request.url)
        try:
            r = self.session.request(
                request.method,
                request.url,
                params=request.params,
                data=request.body,
                headers=request.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            _logger.warning("Request error for %s %s: %s", request.method, request.url, e)
            raise TransportError(str(e), url=request.url) from e

        _logger.debug("HTTP %s <- %s", r.status_code, request.url)
        return HttpResponse(
            status_code=r.status_code,
            content=r.content,
            headers=r.headers,
            url=request.url,
        )

    def close(self) -> None:
        self.session.close()
