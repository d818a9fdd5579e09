"""Streaming API client (CometD / Bayeux long-polling).

Messages go through ``SalesforceAPI.request`` so they share the
authenticated Session and the usual error classification.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .api import SalesforceAPI
from .exceptions import DecodeError, StreamError
from .models import Advice, StreamMessage

_logger = logging.getLogger(__name__)

COMETD_VERSION = "1.0"
SUPPORTED_CONNECTION_TYPES = ["long-polling"]

HANDSHAKE = "/meta/handshake"
CONNECT = "/meta/connect"
DISCONNECT = "/meta/disconnect"
SUBSCRIBE = "/meta/subscribe"
UNSUBSCRIBE = "/meta/unsubscribe"

Subscriptions = Union[Sequence[str], Mapping[str, int]]


class CometdClient:
    """Long-polling CometD client bound to one ``SalesforceAPI``.

    ``subscriptions`` is a list of channels, or a mapping of channel to
    replay id (``-1`` new events only, ``-2`` all retained events).

    Failed messages that carry ``advice`` are followed (``retry`` re-sends
    connect, ``handshake`` re-handshakes and resubscribes) up to
    ``max_retries`` times before ``StreamError`` is raised.
    """

    def __init__(
        self,
        api: SalesforceAPI,
        subscriptions: Subscriptions = (),
        *,
        max_retries: int = 3,
    ) -> None:
        self.api = api
        if isinstance(subscriptions, Mapping):
            self.replay_ids: Dict[str, int] = dict(subscriptions)
            self.subscriptions: List[str] = list(subscriptions)
        else:
            self.replay_ids = {}
            self.subscriptions = list(subscriptions)
        self.max_retries = max_retries
        self.client_id: Optional[str] = None
        self.advice: Optional[Advice] = None
        self._attempts = 0

    @property
    def endpoint(self) -> str:
        return f"/cometd/{self.api.api_version.lstrip('v')}"

    # --------------------------- Public methods -----------------------

    def init(self) -> List[StreamMessage]:
        """Handshake, then subscribe to every configured channel."""
        messages = self.handshake()
        self.subscribe()
        return messages

    def handshake(self) -> List[StreamMessage]:
        try:
            return self._handshake_once()
        finally:
            self._attempts = 0

    def connect(self) -> List[StreamMessage]:
        """Long-poll once; returns the messages delivered by the server."""
        try:
            return self._connect_once()
        finally:
            self._attempts = 0

    def subscribe(self) -> List[StreamMessage]:
        client_id = self._require_client_id("subscribe")
        messages: List[StreamMessage] = []
        for channel in self.subscriptions:
            message: Dict[str, Any] = {
                "channel": SUBSCRIBE,
                "clientId": client_id,
                "subscription": channel,
            }
            if channel in self.replay_ids:
                message["ext"] = {"replay": {channel: self.replay_ids[channel]}}
            messages.extend(self._handle(self._send(message)))
        return messages

    def unsubscribe(self, channel: str) -> List[StreamMessage]:
        client_id = self._require_client_id("unsubscribe")
        messages = self._handle(
            self._send({"channel": UNSUBSCRIBE, "clientId": client_id, "subscription": channel})
        )
        if channel in self.subscriptions:
            self.subscriptions.remove(channel)
        return messages

    def publish(self, channel: str, data: Any) -> List[StreamMessage]:
        client_id = self._require_client_id("publish")
        return self._handle(self._send({"channel": channel, "clientId": client_id, "data": data}))

    def disconnect(self) -> List[StreamMessage]:
        client_id = self._require_client_id("disconnect")
        messages = self._handle(self._send({"channel": DISCONNECT, "clientId": client_id}))
        self.client_id = None
        return messages

    # --------------------------- Internal helpers --------------------

    def _require_client_id(self, operation: str) -> str:
        if not self.client_id:
            raise StreamError(f"No client id set for {operation}; call init() first")
        return self.client_id

    def _send(self, message: Mapping[str, Any]) -> List[StreamMessage]:
        payload = self.api.request("POST", self.endpoint, json=message)
        if not isinstance(payload, list):
            raise DecodeError(f"CometD response is not an array: {type(payload).__name__}")
        return [StreamMessage.from_json(item) for item in payload]

    def _handshake_once(self) -> List[StreamMessage]:
        self._attempts += 1
        _logger.debug("CometD handshake (attempt %d)", self._attempts)
        return self._handle(
            self._send(
                {
                    "channel": HANDSHAKE,
                    "version": COMETD_VERSION,
                    "supportedConnectionTypes": SUPPORTED_CONNECTION_TYPES,
                }
            )
        )

    def _connect_once(self) -> List[StreamMessage]:
        client_id = self._require_client_id("connect")
        self._attempts += 1
        _logger.debug("CometD connect (attempt %d)", self._attempts)
        return self._handle(
            self._send(
                {
                    "channel": CONNECT,
                    "clientId": client_id,
                    "connectionType": SUPPORTED_CONNECTION_TYPES[0],
                }
            )
        )

    def _handle(self, messages: List[StreamMessage]) -> List[StreamMessage]:
        out: List[StreamMessage] = []
        for message in messages:
            if message.advice is not None:
                self.advice = message.advice
            if message.is_error:
                if message.advice is None or not message.advice.reconnect:
                    raise StreamError(
                        f"Not retrying because the server did not provide advice: {message.error}"
                    )
                out.extend(self._follow(message.advice, message.error))
                continue
            if message.channel == HANDSHAKE and message.client_id:
                self.client_id = message.client_id
            out.append(message)
        return out

    def _follow(self, advice: Advice, error: Optional[str]) -> List[StreamMessage]:
        reconnect = advice.reconnect
        _logger.info("Following CometD advice reconnect=%s (%s)", reconnect, error)

        if reconnect == "none":
            raise StreamError(error or "Server advised not to reconnect nor handshake")
        if reconnect not in ("retry", "handshake"):
            raise StreamError(f"Unknown reconnect advice {reconnect!r}: {error}")
        if self._attempts > self.max_retries:
            raise StreamError(error or "Max retries reached")

        if reconnect == "retry":
            return self._connect_once()

        self._handshake_once()
        self.subscribe()
        messages = self._connect_once()
        self._attempts = 0
        return messages
