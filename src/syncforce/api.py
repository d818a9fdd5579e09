from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from . import decoder
from . import request_builder as rb
from .exceptions import (
    ApiError,
    AuthError,
    DecodeError,
    MissingCredentialsError,
    NotLoggedInError,
)
from .models import (
    CompositeResult,
    DescribeGlobal,
    DescribeSObject,
    QueryResponse,
    SaveResult,
    SearchResponse,
    Session,
    TokenResponse,
    Version,
)
from .request_builder import ApiRequest, Record
from .transport import HttpResponse, Transport

_logger = logging.getLogger(__name__)

DEFAULT_LOGIN_URL = "https://login.salesforce.com"
DEFAULT_API_VERSION = "v60.0"

RecordType = Optional[Callable[[Any], Any]]


# ----------------------------------------------------------------------
# Configuration dataclass
# ----------------------------------------------------------------------
@dataclass
class SFConfig:
    """Configuration for Salesforce API authentication."""

    # password | refresh_token | soap
    auth_flow: str = "password"

    # Base login URL (not the instance URL); use https://test.salesforce.com for sandboxes
    login_url: str = DEFAULT_LOGIN_URL

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    refresh_token: Optional[str] = None

    # Optional: pre-issued token / instance URL, adopted by connect() without a login call
    access_token: Optional[str] = None
    instance_url: Optional[str] = None

    api_version: str = DEFAULT_API_VERSION

    # Seconds; None keeps the transport default
    timeout: Optional[float] = None

    @classmethod
    def from_env(cls) -> SFConfig:
        """Load configuration from environment variables."""
        timeout = os.getenv("SF_TIMEOUT")
        return cls(
            auth_flow=os.getenv("SF_AUTH_FLOW", "password"),
            login_url=os.getenv("SF_LOGIN_URL", DEFAULT_LOGIN_URL),
            client_id=os.getenv("SF_CLIENT_ID"),
            client_secret=os.getenv("SF_CLIENT_SECRET"),
            username=os.getenv("SF_USERNAME"),
            password=os.getenv("SF_PASSWORD"),
            refresh_token=os.getenv("SF_REFRESH_TOKEN"),
            access_token=os.getenv("SF_ACCESS_TOKEN"),
            instance_url=os.getenv("SF_INSTANCE_URL"),
            api_version=os.getenv("SF_API_VERSION", DEFAULT_API_VERSION),
            timeout=float(timeout) if timeout else None,
        )


# ----------------------------------------------------------------------
# Main API client
# ----------------------------------------------------------------------
class SalesforceAPI:
    """Salesforce REST API client.

    Every public call performs one HTTP round-trip (``query`` performs one per
    result page) and either returns the decoded value or raises a
    ``SalesforceError`` subclass. Nothing is retried.

    The Session is replaced only by ``connect``, ``login``, ``refresh`` and
    ``login_by_soap``. Instances are not thread-safe: callers sharing one
    client across threads must serialize logins against in-flight requests.
    """

    def __init__(
        self,
        cfg: Optional[SFConfig] = None,
        *,
        transport: Optional[Transport] = None,
    ) -> None:
        self.cfg = cfg or SFConfig.from_env()
        self.transport = transport or Transport(timeout=self.cfg.timeout)
        self._session: Optional[Session] = None

    # --------------------------- Session state ------------------------

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def is_logged_in(self) -> bool:
        return self._session is not None

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    @property
    def instance_url(self) -> Optional[str]:
        return self._session.instance_url if self._session else None

    @property
    def api_version(self) -> str:
        return self._session.api_version if self._session else self.cfg.api_version

    def connect(self) -> Session:
        """Authenticate using either a configured token or the configured auth flow."""
        if self.cfg.access_token and self.cfg.instance_url:
            _logger.debug("Using existing access token from configuration.")
            self._session = Session(
                access_token=self.cfg.access_token,
                instance_url=self.cfg.instance_url.rstrip("/"),
                api_version=self.cfg.api_version,
            )
        elif self.cfg.auth_flow == "password":
            self.login()
        elif self.cfg.auth_flow == "refresh_token":
            self.refresh()
        elif self.cfg.auth_flow == "soap":
            self.login_by_soap()
        else:
            raise ValueError(f"Unsupported SF_AUTH_FLOW: {self.cfg.auth_flow!r}")

        session = self._require_session()
        _logger.info(
            "Connected to Salesforce instance=%s api=%s",
            session.instance_url,
            session.api_version,
        )
        return session

    def login(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        *,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ) -> Session:
        """OAuth username-password flow.

        Arguments left as ``None`` fall back to ``SFConfig``.
        On failure the current Session is left untouched.

        Raises:
            MissingCredentialsError: client id/secret or user credentials are not set.
            AuthError: the token endpoint rejected the request.
            TransportError: the token endpoint could not be reached.
        """
        client_id = client_id or self.cfg.client_id
        client_secret = client_secret or self.cfg.client_secret
        username = username or self.cfg.username
        password = password or self.cfg.password
        self._require_credentials(
            SF_CLIENT_ID=client_id,
            SF_CLIENT_SECRET=client_secret,
            SF_USERNAME=username,
            SF_PASSWORD=password,
        )

        request = rb.password_login(
            self.cfg.login_url,
            client_id,  # type: ignore[arg-type]
            client_secret,  # type: ignore[arg-type]
            username,  # type: ignore[arg-type]
            password,  # type: ignore[arg-type]
        )
        _logger.debug("Requesting access token from %s", request.url)
        token = decoder.decode_token(self.transport.send(request), TokenResponse)
        return self._adopt_token(token)

    def refresh(
        self,
        refresh_token: Optional[str] = None,
        *,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ) -> Session:
        """Exchange a refresh token for a new access token.

        On failure the current Session is left untouched.
        """
        client_id = client_id or self.cfg.client_id
        client_secret = client_secret or self.cfg.client_secret
        refresh_token = refresh_token or self.cfg.refresh_token
        self._require_credentials(
            SF_CLIENT_ID=client_id,
            SF_CLIENT_SECRET=client_secret,
            SF_REFRESH_TOKEN=refresh_token,
        )

        request = rb.refresh_login(
            self.cfg.login_url,
            client_id,  # type: ignore[arg-type]
            client_secret,  # type: ignore[arg-type]
            refresh_token,  # type: ignore[arg-type]
        )
        _logger.debug("Refreshing access token via %s", request.url)
        token = decoder.decode_token(self.transport.send(request), TokenResponse)
        return self._adopt_token(token)

    def login_by_soap(
        self, username: Optional[str] = None, password: Optional[str] = None
    ) -> Session:
        """Partner SOAP login; needs no connected app (no client id/secret)."""
        username = username or self.cfg.username
        password = password or self.cfg.password
        self._require_credentials(SF_USERNAME=username, SF_PASSWORD=password)

        request = rb.soap_login(
            self.cfg.login_url,
            self.cfg.api_version,
            username,  # type: ignore[arg-type]
            password,  # type: ignore[arg-type]
        )
        _logger.debug("SOAP login against %s", request.url)
        response = self.transport.send(request)
        session = self._parse_soap_login(response)
        self._session = session
        _logger.info("SOAP login succeeded, instance=%s", session.instance_url)
        return session

    # --------------------------- Queries & search ---------------------

    def query(self, soql: str, record_type: RecordType = None) -> QueryResponse:
        """Run a SOQL query, following ``nextRecordsUrl`` until ``done``.

        A string starting with ``/services/data/`` is taken as a continuation URL.
        """
        return self._query(soql, include_deleted=False, record_type=record_type)

    def query_all(self, soql: str, record_type: RecordType = None) -> QueryResponse:
        """Like ``query`` but includes deleted and archived rows (``queryAll``)."""
        return self._query(soql, include_deleted=True, record_type=record_type)

    def query_more(self, next_records_url: str, record_type: RecordType = None) -> QueryResponse:
        """Fetch exactly one continuation page."""
        request = rb.query_more(self._require_session(), next_records_url)
        return self._query_page(request, record_type)

    def iter_records(
        self,
        soql: str,
        *,
        include_deleted: bool = False,
        record_type: RecordType = None,
    ) -> Iterator[Any]:
        """Yield records across pages via nextRecordsUrl, fetching lazily."""
        request = rb.query(self._require_session(), soql, include_deleted=include_deleted)
        page = self._query_page(request, record_type)
        yield from page.records
        while not page.done and page.next_records_url:
            page = self.query_more(page.next_records_url, record_type)
            yield from page.records

    def search(self, sosl: str) -> SearchResponse:
        """Run a SOSL search."""
        request = rb.search(self._require_session(), sosl)
        return self._decode(request, SearchResponse)

    # --------------------------- Single records -----------------------

    def find_by_id(self, sobject_type: str, record_id: str, record_type: RecordType = None) -> Any:
        """Fetch one record; ``record_type`` converts the raw dict when given."""
        request = rb.find_by_id(self._require_session(), sobject_type, record_id)
        return self._decode(request, record_type or _as_object)

    def insert(self, sobject_type: str, record: Record) -> SaveResult:
        request = rb.insert(self._require_session(), sobject_type, record)
        result = self._decode(request, SaveResult)
        _logger.debug("Inserted %s %s", sobject_type, result.id)
        return result

    create = insert

    def update(self, sobject_type: str, record_id: str, record: Record) -> None:
        request = rb.update(self._require_session(), sobject_type, record_id, record)
        decoder.check(self._send(request))

    def upsert(
        self,
        sobject_type: str,
        external_id_field: str,
        external_id: str,
        record: Record,
    ) -> Optional[SaveResult]:
        """Insert or update keyed on an external id field.

        Returns the ``SaveResult`` when Salesforce reports one (record created,
        or API versions that answer updates with a body); ``None`` for 204.
        """
        request = rb.upsert(
            self._require_session(), sobject_type, external_id_field, external_id, record
        )
        return decoder.decode(self._send(request), SaveResult, allow_empty=True)

    def delete(self, sobject_type: str, record_id: str) -> None:
        request = rb.delete(self._require_session(), sobject_type, record_id)
        decoder.check(self._send(request))

    # --------------------------- Composite (bulk) ---------------------

    def bulk_insert(
        self,
        records: Sequence[Record],
        *,
        all_or_none: bool = False,
        sobject_type: Optional[str] = None,
    ) -> List[CompositeResult]:
        """Insert up to 200 records in one composite call.

        Each record carries ``attributes.type`` or inherits ``sobject_type``.
        With ``all_or_none`` any failure raises ``ApiError``; otherwise the
        per-element results (same order as ``records``) must be inspected.
        """
        request = rb.composite_insert(
            self._require_session(), records, all_or_none=all_or_none, sobject_type=sobject_type
        )
        return self._composite(request, all_or_none)

    def bulk_update(
        self,
        records: Sequence[Record],
        *,
        all_or_none: bool = False,
        sobject_type: Optional[str] = None,
    ) -> List[CompositeResult]:
        """Update records (each with an ``Id``) in one composite call."""
        request = rb.composite_update(
            self._require_session(), records, all_or_none=all_or_none, sobject_type=sobject_type
        )
        return self._composite(request, all_or_none)

    def bulk_upsert(
        self,
        sobject_type: str,
        external_id_field: str,
        records: Sequence[Record],
        *,
        all_or_none: bool = False,
    ) -> List[CompositeResult]:
        """Upsert records keyed on ``external_id_field`` in one composite call."""
        request = rb.composite_upsert(
            self._require_session(),
            sobject_type,
            external_id_field,
            records,
            all_or_none=all_or_none,
        )
        return self._composite(request, all_or_none)

    def bulk_delete(
        self, ids: Sequence[str], *, all_or_none: bool = False
    ) -> List[CompositeResult]:
        """Delete records by id in one composite call."""
        request = rb.composite_delete(self._require_session(), ids, all_or_none=all_or_none)
        return self._composite(request, all_or_none)

    # --------------------------- Metadata -----------------------------

    def describe_global(self) -> DescribeGlobal:
        """Return /sobjects (global describe)."""
        return self._decode(rb.describe_global(self._require_session()), DescribeGlobal)

    def describe(self, sobject_type: str) -> DescribeSObject:
        """Return /sobjects/{name}/describe."""
        request = rb.describe(self._require_session(), sobject_type)
        return self._decode(request, DescribeSObject)

    def versions(self) -> List[Version]:
        """List API versions; unauthenticated, only the instance URL is needed."""
        instance_url = self.instance_url or self.cfg.instance_url
        if not instance_url:
            raise NotLoggedInError("no instance URL known; log in or configure SF_INSTANCE_URL")
        response = self.transport.send(rb.versions(instance_url))
        return decoder.decode_list(response, Version)

    def latest_version(self) -> str:
        """Return the highest available API version, e.g. ``"v60.0"``."""
        versions = self.versions()
        if not versions:
            raise DecodeError("no API versions returned")
        best = max(versions, key=lambda v: float(v.version.lstrip("v")))
        return best.version if best.version.startswith("v") else f"v{best.version}"

    # --------------------------- Generic access -----------------------

    def request(
        self,
        method: str,
        path_or_url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """Authenticated call to any REST path; returns decoded JSON or ``None``."""
        request = rb.raw(
            self._require_session(), method, path_or_url, params=params, json_body=json
        )
        return decoder.check(self._send(request))

    def close(self) -> None:
        self.transport.close()

    # --------------------------- Internal helpers --------------------

    def _require_session(self) -> Session:
        if self._session is None:
            raise NotLoggedInError()
        return self._session

    def _require_credentials(self, **values: Optional[str]) -> None:
        missing = [k for k, v in {"SF_LOGIN_URL": self.cfg.login_url, **values}.items() if not v]
        if missing:
            raise MissingCredentialsError(missing)

    def _adopt_token(self, token: TokenResponse) -> Session:
        # Build the whole Session before swapping it in
        session = Session(
            access_token=token.access_token,
            instance_url=token.instance_url.rstrip("/"),
            api_version=self.cfg.api_version,
            token_type=token.token_type or "Bearer",
            issued_at=token.issued_at,
        )
        self._session = session
        _logger.info("Obtained access token for instance=%s", session.instance_url)
        return session

    def _parse_soap_login(self, response: HttpResponse) -> Session:
        body = (response.content or b"").decode("utf-8", errors="replace")
        if not 200 <= response.status_code < 300:
            code = _xml_text(body, "faultcode") or "soap_fault"
            message = _xml_text(body, "faultstring") or f"HTTP {response.status_code}"
            raise AuthError(code, message, status=response.status_code)

        session_id = _xml_text(body, "sessionId")
        server_url = _xml_text(body, "serverUrl")
        if not session_id or not server_url:
            raise AuthError(
                "invalid_response",
                "SOAP login response lacks sessionId or serverUrl",
                status=response.status_code,
            )
        return Session(
            access_token=session_id,
            instance_url=server_url.split("/services/", 1)[0],
            api_version=self.cfg.api_version,
        )

    def _send(self, request: ApiRequest) -> HttpResponse:
        return self.transport.send(request)

    def _decode(self, request: ApiRequest, model: decoder.Converter) -> Any:
        return decoder.decode(self._send(request), model)

    def _query(self, soql: str, *, include_deleted: bool, record_type: RecordType) -> QueryResponse:
        session = self._require_session()
        if soql.startswith(rb.DATA_PATH):
            first = rb.query_more(session, soql)
        else:
            first = rb.query(session, soql, include_deleted=include_deleted)
        result = self._query_page(first, record_type)

        records = list(result.records)
        page = result
        while not page.done:
            if not page.next_records_url:
                raise DecodeError("query page has done=false but no nextRecordsUrl")
            page = self.query_more(page.next_records_url, record_type)
            records.extend(page.records)

        _logger.debug("Query returned %d of %d records", len(records), result.total_size)
        return QueryResponse(
            total_size=result.total_size,
            done=True,
            records=records,
            next_records_url=None,
        )

    def _query_page(self, request: ApiRequest, record_type: RecordType) -> QueryResponse:
        page = self._decode(request, QueryResponse)
        if record_type is not None:
            page.records = [record_type(r) for r in page.records]
        return page

    def _composite(self, request: ApiRequest, all_or_none: bool) -> List[CompositeResult]:
        response = self._send(request)
        results = decoder.decode_list(response, CompositeResult)

        failed = [(i, r) for i, r in enumerate(results) if r.failed]
        if failed and all_or_none:
            errors = [e.to_detail() for _, r in failed for e in r.errors]
            raise ApiError(response.status_code, response.url, errors)
        for index, result in failed:
            _logger.warning(
                "Composite element %d failed: %s",
                index,
                ", ".join(e.status_code for e in result.errors),
            )
        return results


def _as_object(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise DecodeError(f"expected object, got {type(payload).__name__}")
    return payload


def _xml_text(body: str, tag: str) -> Optional[str]:
    # SOAP responses may prefix tags with a namespace (e.g. <sf:faultcode>)
    m = re.search(rf"<(?:\w+:)?{tag}>([^<]+)</(?:\w+:)?{tag}>", body)
    return m.group(1) if m else None

