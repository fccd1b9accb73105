"""MQTT change-feed subscriber.

The hosted document store publishes one JSON message per committed change::

    {"kind": "updated", "path": "users/u/vehicles/v/drives/d",
     "before": {...}, "after": {...}, "eventId": "..."}

:class:`ChangeFeedRuntime` runs paho-mqtt's network loop on its own thread
and hands decoded events to the asyncio loop thread-safely.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt
from pydantic import ValidationError

from drivepipe._redact import redact_for_log
from drivepipe.config import ChangeFeedProfile
from drivepipe.exceptions import ChangeMessageError
from drivepipe.feed.events import ChangeEvent


def decode_change_message(payload: bytes) -> ChangeEvent:
    """Parse an MQTT payload into a :class:`ChangeEvent`.

    Raises
    ------
    ChangeMessageError
        If the payload is not a JSON object describing a change.
    """
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ChangeMessageError(f"Change message is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ChangeMessageError("Change message decoded to non-object JSON")
    try:
        return ChangeEvent.model_validate(parsed)
    except ValidationError as exc:
        raise ChangeMessageError(f"Malformed change message: {exc}") from exc


class ChangeFeedRuntime:
    """Threaded paho-mqtt runtime that emits change events onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_event: Callable[[ChangeEvent], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._on_event = on_event
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._profile: ChangeFeedProfile | None = None

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def _handle_payload(self, topic: str, payload: bytes) -> None:
        try:
            event = decode_change_message(payload)
        except ChangeMessageError:
            self._logger.warning("Dropping undecodable change message on %s", topic, exc_info=True)
            return
        self._logger.debug(
            "Change message topic=%s kind=%s path=%s after=%s",
            topic,
            event.kind,
            event.path,
            redact_for_log(event.after, max_string=128),
        )
        self._loop.call_soon_threadsafe(self._on_event, event)

    def start(self, profile: ChangeFeedProfile) -> None:
        """Connect and subscribe with the given broker settings."""
        self.stop()
        self._logger.debug(
            "Change feed start requested host=%s port=%s topic=%s client_id=%s",
            profile.broker_host,
            profile.broker_port,
            profile.topic,
            profile.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=profile.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if profile.username:
            client.username_pw_set(profile.username, profile.password)
        if profile.tls:
            client.tls_set()

        self._profile = profile

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("Change feed connect failed: %s", reason_code)
                return
            self._logger.debug("Change feed connected reason=%s", reason_code)
            if self._profile is not None:
                # Resubscribe on every connect so reconnects keep receiving.
                c.subscribe(self._profile.topic, qos=self._profile.qos)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self._handle_payload(msg.topic, msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("Change feed disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(profile.broker_host, profile.broker_port, keepalive=profile.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("Change feed network loop started")

    def stop(self) -> None:
        """Stop and disconnect the current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._profile = None

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("Change feed disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("Change feed network loop stopped")
