"""Tests for syncforce.decoder response classification."""

import json

import pytest

from syncforce import decoder
from syncforce.exceptions import ApiError, AuthError, DecodeError, TransportError
from syncforce.models import QueryResponse, SaveResult, TokenResponse, Version
from syncforce.transport import HttpResponse

URL = "https://myorg.my.salesforce.com/services/data/v60.0/query"


def _resp(status, body=None, raw=None):
    if raw is None:
        raw = b"" if body is None else json.dumps(body).encode()
    return HttpResponse(status_code=status, content=raw, headers={}, url=URL)


ERROR_ARRAY = [
    {
        "message": "unexpected token: FROMM",
        "errorCode": "MALFORMED_QUERY",
        "fields": [],
    }
]


class TestErrorArray:
    """A top-level error array is always an ApiError."""

    @pytest.mark.parametrize("status", [200, 400, 404])
    def test_error_array_any_status(self, status):
        with pytest.raises(ApiError) as exc_info:
            decoder.decode(_resp(status, ERROR_ARRAY), QueryResponse.from_json)

        err = exc_info.value
        assert err.status == status
        assert err.error_code == "MALFORMED_QUERY"
        assert err.message == "unexpected token: FROMM"
        assert err.url == URL

    def test_error_array_beats_list_decoding(self):
        """Even list-shaped operations see the error array as an error."""
        with pytest.raises(ApiError):
            decoder.decode_list(_resp(200, ERROR_ARRAY), Version.from_json)

    def test_multiple_errors_kept_in_order(self):
        body = [
            {"message": "first", "errorCode": "A"},
            {"message": "second", "errorCode": "B", "fields": ["Name"]},
        ]
        with pytest.raises(ApiError) as exc_info:
            decoder.check(_resp(400, body))

        assert [e.error_code for e in exc_info.value.errors] == ["A", "B"]
        assert exc_info.value.errors[1].fields == ["Name"]


class TestTransportFailures:
    """Non-JSON bodies and unexpected statuses."""

    def test_html_body(self):
        with pytest.raises(TransportError) as exc_info:
            decoder.check(_resp(503, raw=b"<html>Service Unavailable</html>"))

        assert exc_info.value.status == 503
        assert "not JSON" in str(exc_info.value)

    def test_non_json_success_body(self):
        with pytest.raises(TransportError):
            decoder.decode(_resp(200, raw=b"OK"), Version.from_json)

    def test_unexpected_status_with_json_object(self):
        with pytest.raises(TransportError) as exc_info:
            decoder.check(_resp(500, {"oops": True}))

        assert exc_info.value.status == 500


class TestDecodeFailures:
    """JSON that matches no expected shape."""

    def test_wrong_shape(self):
        with pytest.raises(DecodeError):
            decoder.decode(_resp(200, {"unexpected": 1}), QueryResponse.from_json)

    def test_empty_body_not_allowed(self):
        with pytest.raises(DecodeError):
            decoder.decode(_resp(200), SaveResult.from_json)

    def test_empty_body_allowed(self):
        assert decoder.decode(_resp(204), SaveResult.from_json, allow_empty=True) is None

    def test_model_class_validation_error(self):
        with pytest.raises(DecodeError, match="(?s)unexpected body from .*totalSize"):
            decoder.decode(_resp(200, {"done": True, "records": []}), QueryResponse)

    def test_plain_callable_key_error(self):
        with pytest.raises(DecodeError, match="unexpected body"):
            decoder.decode(_resp(200, {"label": "x"}), lambda payload: payload["version"])

    def test_list_elements_validated_with_model_class(self):
        body = [{"label": "Spring '24", "url": "/services/data/v60.0", "version": "60.0"}, {"label": "x"}]
        with pytest.raises(DecodeError, match="version"):
            decoder.decode_list(_resp(200, body), Version)

    def test_list_expected(self):
        with pytest.raises(DecodeError, match="expected array"):
            decoder.decode_list(_resp(200, {"label": "x"}), Version.from_json)


class TestSuccess:
    def test_decode_object(self):
        res = decoder.decode(
            _resp(200, {"totalSize": 1, "done": True, "records": [{"Id": "1"}]}),
            QueryResponse.from_json,
        )

        assert res.total_size == 1

    def test_empty_error_list_is_not_an_error(self):
        """An empty top-level array is a valid (empty) success body."""
        assert decoder.decode_list(_resp(200, []), Version.from_json) == []


class TestTokenDecoding:
    """Token endpoint failures all surface as AuthError."""

    def test_invalid_grant(self):
        body = {"error": "invalid_grant", "error_description": "authentication failure"}
        with pytest.raises(AuthError) as exc_info:
            decoder.decode_token(_resp(400, body), TokenResponse.from_json)

        assert exc_info.value.error == "invalid_grant"
        assert exc_info.value.description == "authentication failure"
        assert exc_info.value.status == 400

    def test_malformed_success_body(self):
        with pytest.raises(AuthError) as exc_info:
            decoder.decode_token(_resp(200, {"instance_url": "x"}), TokenResponse.from_json)

        assert exc_info.value.error == "invalid_response"

    def test_non_json_body(self):
        with pytest.raises(AuthError):
            decoder.decode_token(_resp(502, raw=b"Bad Gateway"), TokenResponse.from_json)

    def test_success(self):
        token = decoder.decode_token(
            _resp(200, {"access_token": "t", "instance_url": "https://i"}),
            TokenResponse.from_json,
        )

        assert token.access_token == "t"
