import json
from unittest.mock import MagicMock

import pytest

from syncforce.api import SalesforceAPI, SFConfig
from syncforce.models import QueryResponse, Session

INSTANCE_URL = "https://myorg.my.salesforce.com"
BASE = f"{INSTANCE_URL}/services/data/v60.0"


def make_response(status_code=200, body=None, *, raw=None):
    """Fake requests.Response carrying a JSON (or raw) body."""
    response = MagicMock()
    response.status_code = status_code
    if raw is not None:
        response.content = raw
    elif body is None:
        response.content = b""
    else:
        response.content = json.dumps(body).encode("utf-8")
    response.headers = {}
    return response


@pytest.fixture
def connected_api():
    """Return an API instance holding a session adopted from configuration."""
    cfg = SFConfig(
        client_id="cid",
        client_secret="csecret",
        access_token="token",
        instance_url=INSTANCE_URL,
        api_version="v60.0",
    )
    api = SalesforceAPI(cfg)
    api.connect()
    return api


@pytest.fixture(autouse=True)
def dummy_api(monkeypatch):
    """
    Global DummyAPI replacement for the CLI.
    Library tests use SalesforceAPI directly and are unaffected.
    """

    class DummyAPI:
        def __init__(self, config):
            self.cfg = config
            self.session = None

        def connect(self):
            self.session = Session(
                access_token="00DFAKE-TOKEN-1234567890",
                instance_url="https://example.my.salesforce.com",
                api_version="v60.0",
            )
            return self.session

        def query(self, soql):
            return QueryResponse(
                total_size=1,
                done=True,
                records=[
                    {
                        "attributes": {
                            "type": "Account",
                            "url": "/services/data/v60.0/sobjects/Account/001",
                        },
                        "Id": "001",
                        "Name": "Acme Corp",
                    }
                ],
            )

        def query_all(self, soql):
            return QueryResponse(total_size=0, done=True, records=[])

    # Only the API is patched; SFConfig stays real
    monkeypatch.setattr("syncforce.cli.SalesforceAPI", DummyAPI)
    return DummyAPI


@pytest.fixture
def fake_response():
    """Factory for fake HTTP responses."""
    return make_response
