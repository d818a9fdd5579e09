"""Synchronous client for the Salesforce REST and Streaming APIs."""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version

from .api import SalesforceAPI, SFConfig
from .exceptions import (
    ApiError,
    AuthError,
    DecodeError,
    MissingCredentialsError,
    NotLoggedInError,
    SalesforceError,
    StreamError,
    TransportError,
)
from .models import (
    CompositeResult,
    DescribeGlobal,
    DescribeSObject,
    ErrorDetail,
    QueryResponse,
    SaveResult,
    SearchResponse,
    Session,
    Version,
)
from .stream import CometdClient

try:
    __version__ = version("syncforce")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

# Keep library modules quiet unless the app configures logging:
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ApiError",
    "AuthError",
    "CometdClient",
    "CompositeResult",
    "DecodeError",
    "DescribeGlobal",
    "DescribeSObject",
    "ErrorDetail",
    "MissingCredentialsError",
    "NotLoggedInError",
    "QueryResponse",
    "SFConfig",
    "SalesforceAPI",
    "SalesforceError",
    "SaveResult",
    "SearchResponse",
    "Session",
    "StreamError",
    "TransportError",
    "Version",
    "__version__",
]
