"""Build the HTTP request for each Salesforce operation.

Builders are pure: they take the current ``Session`` plus operation inputs
and return an ``ApiRequest``. Nothing here touches the network.
"""

from __future__ import annotations

import datetime as _dt
import json
from collections import namedtuple
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union
from urllib.parse import quote
from xml.sax.saxutils import escape

from .models import Attributes, Model, Session

ApiRequest = namedtuple("ApiRequest", ["method", "url", "params", "headers", "body"])

Record = Union[Mapping[str, Any], Model]

TOKEN_PATH = "/services/oauth2/token"
DATA_PATH = "/services/data/"


# ----------------------------------------------------------------------
# Encoding helpers
# ----------------------------------------------------------------------
def _segment(value: Any) -> str:
    """Escape one path segment; ``/`` and ``%`` included, so it is encoded exactly once."""
    return quote(str(value), safe="")


def _json_default(value: Any) -> Any:
    if isinstance(value, (_dt.datetime, _dt.date, _dt.time)):
        return value.isoformat()
    if isinstance(value, Model):
        return value.to_json()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _encode(body: Any) -> bytes:
    return json.dumps(body, default=_json_default).encode("utf-8")


def _headers(session: Session, *, has_body: bool = False) -> Dict[str, str]:
    headers = {"Authorization": session.authorization, "Accept": "application/json"}
    if has_body:
        headers["Content-Type"] = "application/json"
    return headers


def _get(session: Session, url: str, params: Optional[Dict[str, str]] = None) -> ApiRequest:
    return ApiRequest("GET", url, params, _headers(session), None)


def _with_body(session: Session, method: str, url: str, body: Any) -> ApiRequest:
    return ApiRequest(method, url, None, _headers(session, has_body=True), _encode(body))


def resolve_url(session: Session, path_or_url: str) -> str:
    """Absolute URLs pass through; paths are joined to the instance URL."""
    if path_or_url.startswith(("https://", "http://")):
        return path_or_url
    if not path_or_url.startswith("/"):
        path_or_url = "/" + path_or_url
    return f"{session.instance_url}{path_or_url}"


# ----------------------------------------------------------------------
# Records
# ----------------------------------------------------------------------
def record_fields(record: Record) -> Dict[str, Any]:
    """Return the field map of ``record`` without its ``attributes`` entry."""
    data = record.to_json() if isinstance(record, Model) else dict(record)
    data.pop("attributes", None)
    return data


def record_type(record: Record) -> Optional[str]:
    """Return ``attributes.type`` when the record carries one."""
    if isinstance(record, Model):
        attributes = getattr(record, "attributes", None)
        if isinstance(attributes, Attributes):
            return attributes.sobject_type
        record = record.to_json()
    attributes = record.get("attributes")
    if isinstance(attributes, Attributes):
        return attributes.sobject_type
    if isinstance(attributes, Mapping):
        return attributes.get("type")
    return None


def resolve_type(record: Record, sobject_type: Optional[str] = None) -> str:
    """Resolve the single object type a write targets.

    Raises:
        ValueError: no type is known, or the record names a different type.
    """
    carried = record_type(record)
    if carried and sobject_type and carried != sobject_type:
        raise ValueError(f"Record type {carried!r} conflicts with requested type {sobject_type!r}")
    resolved = carried or sobject_type
    if not resolved:
        raise ValueError("Record has no attributes.type and no object type was given")
    return resolved


def composite_record(record: Record, sobject_type: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"attributes": {"type": resolve_type(record, sobject_type)}}
    body.update(record_fields(record))
    return body


def _composite_body(records: Iterable[Dict[str, Any]], all_or_none: bool) -> Dict[str, Any]:
    return {"allOrNone": bool(all_or_none), "records": list(records)}


# ----------------------------------------------------------------------
# Token endpoint
# ----------------------------------------------------------------------
def _token_request(login_url: str, form: Dict[str, str]) -> ApiRequest:
    return ApiRequest(
        "POST",
        f"{login_url.rstrip('/')}{TOKEN_PATH}",
        None,
        {"Accept": "application/json"},
        form,
    )


def password_login(
    login_url: str, client_id: str, client_secret: str, username: str, password: str
) -> ApiRequest:
    return _token_request(
        login_url,
        {
            "grant_type": "password",
            "client_id": client_id,
            "client_secret": client_secret,
            "username": username,
            "password": password,
        },
    )


def refresh_login(
    login_url: str, client_id: str, client_secret: str, refresh_token: str
) -> ApiRequest:
    return _token_request(
        login_url,
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        },
    )


def soap_login(login_url: str, api_version: str, username: str, password: str) -> ApiRequest:
    envelope = (
        "<se:Envelope xmlns:se='http://schemas.xmlsoap.org/soap/envelope/'>"
        "<se:Header/>"
        "<se:Body>"
        "<login xmlns='urn:partner.soap.sforce.com'>"
        f"<username>{escape(username)}</username>"
        f"<password>{escape(password)}</password>"
        "</login>"
        "</se:Body>"
        "</se:Envelope>"
    )
    version = api_version.lstrip("v")
    return ApiRequest(
        "POST",
        f"{login_url.rstrip('/')}/services/Soap/u/{version}",
        None,
        {"Content-Type": "text/xml; charset=UTF-8", "SOAPAction": '""'},
        envelope.encode("utf-8"),
    )


# ----------------------------------------------------------------------
# Data API
# ----------------------------------------------------------------------
def query(session: Session, soql: str, *, include_deleted: bool = False) -> ApiRequest:
    resource = "queryAll" if include_deleted else "query"
    return _get(session, f"{session.base_path}/{resource}", {"q": soql})


def query_more(session: Session, next_records_url: str) -> ApiRequest:
    return _get(session, resolve_url(session, next_records_url))


def search(session: Session, sosl: str) -> ApiRequest:
    return _get(session, f"{session.base_path}/search", {"q": sosl})


def find_by_id(session: Session, sobject_type: str, record_id: str) -> ApiRequest:
    url = f"{session.base_path}/sobjects/{_segment(sobject_type)}/{_segment(record_id)}"
    return _get(session, url)


def insert(session: Session, sobject_type: str, record: Record) -> ApiRequest:
    resolve_type(record, sobject_type)
    url = f"{session.base_path}/sobjects/{_segment(sobject_type)}"
    return _with_body(session, "POST", url, record_fields(record))


def update(session: Session, sobject_type: str, record_id: str, record: Record) -> ApiRequest:
    resolve_type(record, sobject_type)
    fields = record_fields(record)
    fields.pop("Id", None)
    url = f"{session.base_path}/sobjects/{_segment(sobject_type)}/{_segment(record_id)}"
    return _with_body(session, "PATCH", url, fields)


def upsert(
    session: Session,
    sobject_type: str,
    external_id_field: str,
    external_id: str,
    record: Record,
) -> ApiRequest:
    resolve_type(record, sobject_type)
    fields = record_fields(record)
    fields.pop(external_id_field, None)
    url = (
        f"{session.base_path}/sobjects/{_segment(sobject_type)}"
        f"/{_segment(external_id_field)}/{_segment(external_id)}"
    )
    return _with_body(session, "PATCH", url, fields)


def delete(session: Session, sobject_type: str, record_id: str) -> ApiRequest:
    url = f"{session.base_path}/sobjects/{_segment(sobject_type)}/{_segment(record_id)}"
    return ApiRequest("DELETE", url, None, _headers(session), None)


def composite_insert(
    session: Session,
    records: Sequence[Record],
    *,
    all_or_none: bool,
    sobject_type: Optional[str] = None,
) -> ApiRequest:
    body = _composite_body((composite_record(r, sobject_type) for r in records), all_or_none)
    return _with_body(session, "POST", f"{session.base_path}/composite/sobjects", body)


def composite_update(
    session: Session,
    records: Sequence[Record],
    *,
    all_or_none: bool,
    sobject_type: Optional[str] = None,
) -> ApiRequest:
    prepared: List[Dict[str, Any]] = []
    for index, r in enumerate(records):
        item = composite_record(r, sobject_type)
        if not item.get("Id"):
            raise ValueError(f"Record at index {index} has no Id")
        prepared.append(item)
    body = _composite_body(prepared, all_or_none)
    return _with_body(session, "PATCH", f"{session.base_path}/composite/sobjects", body)


def composite_upsert(
    session: Session,
    sobject_type: str,
    external_id_field: str,
    records: Sequence[Record],
    *,
    all_or_none: bool,
) -> ApiRequest:
    prepared: List[Dict[str, Any]] = []
    for index, r in enumerate(records):
        item = composite_record(r, sobject_type)
        if item.get(external_id_field) in (None, ""):
            raise ValueError(f"Record at index {index} has no {external_id_field}")
        prepared.append(item)
    url = (
        f"{session.base_path}/composite/sobjects"
        f"/{_segment(sobject_type)}/{_segment(external_id_field)}"
    )
    return _with_body(session, "PATCH", url, _composite_body(prepared, all_or_none))


def composite_delete(session: Session, ids: Sequence[str], *, all_or_none: bool) -> ApiRequest:
    params = {"ids": ",".join(ids), "allOrNone": "true" if all_or_none else "false"}
    url = f"{session.base_path}/composite/sobjects"
    return ApiRequest("DELETE", url, params, _headers(session), None)


def describe_global(session: Session) -> ApiRequest:
    return _get(session, f"{session.base_path}/sobjects")


def describe(session: Session, sobject_type: str) -> ApiRequest:
    return _get(session, f"{session.base_path}/sobjects/{_segment(sobject_type)}/describe")


def versions(instance_url: str) -> ApiRequest:
    return ApiRequest(
        "GET", f"{instance_url.rstrip('/')}{DATA_PATH}", None, {"Accept": "application/json"}, None
    )


def raw(
    session: Session,
    method: str,
    path_or_url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json_body: Any = None,
) -> ApiRequest:
    has_body = json_body is not None
    return ApiRequest(
        method.upper(),
        resolve_url(session, path_or_url),
        params,
        _headers(session, has_body=has_body),
        _encode(json_body) if has_body else None,
    )
