"""Tests for syncforce.request_builder."""

import datetime as dt
import json

import pytest

from syncforce import request_builder as rb
from syncforce.models import Attributes, SearchRecord, Session

SESSION = Session(
    access_token="tok",
    instance_url="https://myorg.my.salesforce.com",
    api_version="v60.0",
)
BASE = "https://myorg.my.salesforce.com/services/data/v60.0"


def _body(request):
    return json.loads(request.body.decode("utf-8"))


class TestHeaders:
    def test_bearer_token_on_reads(self):
        req = rb.describe_global(SESSION)

        assert req.headers["Authorization"] == "Bearer tok"
        assert "Content-Type" not in req.headers
        assert req.body is None

    def test_json_content_type_on_writes(self):
        req = rb.insert(SESSION, "Account", {"Name": "Acme"})

        assert req.headers["Content-Type"] == "application/json"
        assert req.headers["Authorization"] == "Bearer tok"


class TestQueryPaths:
    def test_query(self):
        req = rb.query(SESSION, "SELECT Id FROM Account")

        assert req.method == "GET"
        assert req.url == f"{BASE}/query"
        assert req.params == {"q": "SELECT Id FROM Account"}

    def test_query_all(self):
        req = rb.query(SESSION, "SELECT Id FROM Account", include_deleted=True)

        assert req.url == f"{BASE}/queryAll"

    def test_query_more_relative(self):
        req = rb.query_more(SESSION, "/services/data/v60.0/query/01gNEXT-2000")

        assert req.url == f"{BASE}/query/01gNEXT-2000"
        assert req.params is None

    def test_query_more_absolute(self):
        url = "https://other.my.salesforce.com/services/data/v60.0/query/01g"
        assert rb.query_more(SESSION, url).url == url

    def test_search(self):
        req = rb.search(SESSION, "FIND {Acme}")

        assert req.url == f"{BASE}/search"
        assert req.params == {"q": "FIND {Acme}"}


class TestSingleRecordPaths:
    def test_find_by_id(self):
        req = rb.find_by_id(SESSION, "Account", "001xx0000001")

        assert (req.method, req.url) == ("GET", f"{BASE}/sobjects/Account/001xx0000001")

    def test_insert_strips_attributes(self):
        req = rb.insert(
            SESSION, "Account", {"attributes": {"type": "Account"}, "Name": "Acme"}
        )

        assert (req.method, req.url) == ("POST", f"{BASE}/sobjects/Account")
        assert _body(req) == {"Name": "Acme"}

    def test_insert_conflicting_type(self):
        with pytest.raises(ValueError, match="conflicts"):
            rb.insert(SESSION, "Account", {"attributes": {"type": "Contact"}, "Name": "x"})

    def test_update(self):
        req = rb.update(SESSION, "Account", "001", {"Id": "001", "Name": "New"})

        assert (req.method, req.url) == ("PATCH", f"{BASE}/sobjects/Account/001")
        assert _body(req) == {"Name": "New"}

    def test_delete(self):
        req = rb.delete(SESSION, "Account", "001")

        assert (req.method, req.url, req.body) == ("DELETE", f"{BASE}/sobjects/Account/001", None)

    def test_dates_serialized_iso(self):
        req = rb.insert(SESSION, "Event", {"ActivityDate": dt.date(2024, 1, 31)})

        assert _body(req) == {"ActivityDate": "2024-01-31"}


class TestUpsertPath:
    """External id values are escaped exactly once."""

    def test_plain_value(self):
        req = rb.upsert(SESSION, "Account", "ExKey__c", "123", {"Name": "foo"})

        assert req.url == f"{BASE}/sobjects/Account/ExKey__c/123"
        assert req.method == "PATCH"

    def test_value_needing_escape(self):
        req = rb.upsert(SESSION, "Account", "ExKey__c", "A/B 50%", {"Name": "foo"})

        assert req.url == f"{BASE}/sobjects/Account/ExKey__c/A%2FB%2050%25"
        assert req.url.count("ExKey__c") == 1
        assert "%2525" not in req.url

    def test_external_field_removed_from_body(self):
        req = rb.upsert(SESSION, "Account", "ExKey__c", "123", {"ExKey__c": "123", "Name": "foo"})

        assert _body(req) == {"Name": "foo"}


class TestComposite:
    def test_insert_envelope(self):
        req = rb.composite_insert(
            SESSION,
            [
                {"attributes": {"type": "Account"}, "Name": "A"},
                {"attributes": {"type": "Contact"}, "LastName": "B"},
            ],
            all_or_none=True,
        )

        assert (req.method, req.url) == ("POST", f"{BASE}/composite/sobjects")
        assert _body(req) == {
            "allOrNone": True,
            "records": [
                {"attributes": {"type": "Account"}, "Name": "A"},
                {"attributes": {"type": "Contact"}, "LastName": "B"},
            ],
        }

    def test_insert_implied_type(self):
        req = rb.composite_insert(
            SESSION, [{"Name": "A"}, {"Name": "B"}], all_or_none=False, sobject_type="Account"
        )

        body = _body(req)
        assert body["allOrNone"] is False
        assert [r["attributes"]["type"] for r in body["records"]] == ["Account", "Account"]

    def test_insert_without_type_rejected(self):
        with pytest.raises(ValueError, match="attributes.type"):
            rb.composite_insert(SESSION, [{"Name": "A"}], all_or_none=False)

    def test_update_requires_id(self):
        with pytest.raises(ValueError, match="index 1"):
            rb.composite_update(
                SESSION,
                [{"Id": "001", "Name": "A"}, {"Name": "B"}],
                all_or_none=False,
                sobject_type="Account",
            )

    def test_update_envelope(self):
        req = rb.composite_update(
            SESSION, [{"Id": "001", "Name": "A"}], all_or_none=False, sobject_type="Account"
        )

        assert req.method == "PATCH"
        assert _body(req)["records"] == [{"attributes": {"type": "Account"}, "Id": "001", "Name": "A"}]

    def test_upsert_routing(self):
        req = rb.composite_upsert(
            SESSION, "Account", "ExKey__c", [{"ExKey__c": "k1", "Name": "A"}], all_or_none=True
        )

        assert (req.method, req.url) == ("PATCH", f"{BASE}/composite/sobjects/Account/ExKey__c")
        assert _body(req)["records"][0]["attributes"] == {"type": "Account"}

    def test_upsert_requires_external_id(self):
        with pytest.raises(ValueError, match="ExKey__c"):
            rb.composite_upsert(SESSION, "Account", "ExKey__c", [{"Name": "A"}], all_or_none=True)

    def test_delete_params(self):
        req = rb.composite_delete(SESSION, ["001", "002"], all_or_none=True)

        assert (req.method, req.url) == ("DELETE", f"{BASE}/composite/sobjects")
        assert req.params == {"ids": "001,002", "allOrNone": "true"}


class TestRecordTypes:
    def test_model_record_type(self):
        record = SearchRecord(id="001", attributes=Attributes(sobject_type="Account"))

        assert rb.record_type(record) == "Account"

    def test_mapping_without_attributes(self):
        assert rb.record_type({"Name": "x"}) is None


class TestUnauthenticated:
    def test_versions(self):
        req = rb.versions("https://myorg.my.salesforce.com/")

        assert req.url == "https://myorg.my.salesforce.com/services/data/"
        assert "Authorization" not in req.headers

    def test_password_login_form(self):
        req = rb.password_login("https://login.salesforce.com/", "cid", "sec", "u", "p")

        assert req.url == "https://login.salesforce.com/services/oauth2/token"
        assert req.body == {
            "grant_type": "password",
            "client_id": "cid",
            "client_secret": "sec",
            "username": "u",
            "password": "p",
        }
        assert "Authorization" not in req.headers

    def test_refresh_form(self):
        req = rb.refresh_login("https://login.salesforce.com", "cid", "sec", "rt")

        assert req.body["grant_type"] == "refresh_token"
        assert req.body["refresh_token"] == "rt"

    def test_soap_envelope_escapes_credentials(self):
        req = rb.soap_login("https://login.salesforce.com", "v60.0", "a&b", "<pw>")

        assert req.url == "https://login.salesforce.com/services/Soap/u/60.0"
        assert b"<username>a&amp;b</username>" in req.body
        assert b"<password>&lt;pw&gt;</password>" in req.body
        assert req.headers["SOAPAction"] == '""'
