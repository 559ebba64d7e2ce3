"""
MQTT subscriber for BAC RFID tag reports.

Connects to one broker, subscribes to the tag topic filter, decodes every
message and hands the result to caller-supplied sinks. When the link drops, or
an attempt fails, it waits a fixed delay and tries again until stop() is called.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import paho.mqtt.client as mqtt

from rfid_tag_monitor.tag_topics import (
    DecodeFailure,
    TagEvent,
    decode_message,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY_S = 5.0


@dataclass(frozen=True, slots=True)
class BrokerEndpoint:
    host: str
    port: int = 1883

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host:
            raise ValueError("host must be a non-empty string")
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not (1 <= self.port <= 65535):
            raise ValueError(f"port out of range: {self.port!r}")

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class TransportConnectError(Exception):
    """A connect or subscribe attempt failed. Reported to observers, never raised."""

    def __init__(self, endpoint: BrokerEndpoint, reason: str) -> None:
        super().__init__(f"{endpoint}: {reason}")
        self.endpoint = endpoint
        self.reason = reason


class LinkState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AWAITING_RETRY = "awaiting_retry"
    STOPPED = "stopped"


class TagSubscriber:
    """
    Keeps one subscribed connection to a broker alive.

    A single worker thread owns the paho client and drives its network loop, so
    paho callbacks all run on that thread and at most one connect attempt is in
    flight. stop() may be called from any thread, including from a sink.
    """

    def __init__(
        self,
        endpoint: BrokerEndpoint,
        topic: str,
        on_event: Callable[[TagEvent], None],
        on_decode_failure: Callable[[DecodeFailure], None],
        *,
        on_connection_error: Optional[Callable[[TransportConnectError], None]] = None,
        on_message: Optional[Callable[[str, bytes], None]] = None,
        retry_delay_s: float = DEFAULT_RETRY_DELAY_S,
        keepalive: int = 60,
        client_id: Optional[str] = None,
        qos: int = 0,
        loop_timeout_s: float = 1.0,
        connack_timeout_s: Optional[float] = None,
    ) -> None:
        self.endpoint = endpoint
        self.topic = topic
        self.retry_delay_s = retry_delay_s
        self.keepalive = keepalive
        self.client_id = client_id or ""
        self.qos = qos
        self.loop_timeout_s = loop_timeout_s
        self.connack_timeout_s = connack_timeout_s if connack_timeout_s is not None else float(keepalive)

        self._on_event = on_event
        self._on_decode_failure = on_decode_failure
        self._on_connection_error = on_connection_error
        self._on_raw_message = on_message

        self._client: Optional[mqtt.Client] = None
        self._thread: Optional[threading.Thread] = None
        self._state = LinkState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()

        # Per-attempt flags; only touched on the worker thread.
        self._link_down = False
        self._subscribe_mid: Optional[int] = None
        self._attempt_started = 0.0

    # -------------------------
    # Lifecycle
    # -------------------------
    @property
    def state(self) -> LinkState:
        with self._state_lock:
            return self._state

    def is_connected(self) -> bool:
        return self.state is LinkState.CONNECTED

    def start(self) -> None:
        """Begin connecting in the background. Returns immediately."""
        if not isinstance(self.topic, str) or not self.topic:
            raise ValueError("topic must be a non-empty string")
        with self._state_lock:
            if self._state is not LinkState.DISCONNECTED or self._thread is not None:
                raise RuntimeError(f"TagSubscriber cannot start from state {self._state.value}")
            self._client = self._create_client()
            self._thread = threading.Thread(
                target=self._run,
                daemon=True,
                name="rfid-mqtt-link",
            )
        logger.info("Starting subscriber for %s on %s", self.topic, self.endpoint)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop for good: cancel any pending retry wait and drop the connection."""
        with self._state_lock:
            if self._state is LinkState.STOPPED:
                return
            self._state = LinkState.STOPPED
            thread = self._thread
        self._stop_event.set()
        logger.info("Stopping subscriber for %s", self.endpoint)

        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("Subscriber thread did not stop within %.1fs", timeout)

    def _create_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
        )
        client.on_connect = self._on_connect
        client.on_subscribe = self._on_subscribe
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        return client

    def _transition(self, new_state: LinkState) -> bool:
        """Move to new_state unless stopped. Returns False once stopped."""
        with self._state_lock:
            if self._state is LinkState.STOPPED:
                return False
            self._state = new_state
            return True

    # -------------------------
    # Worker
    # -------------------------
    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                if self._attempt():
                    self._pump()
                if not self._transition(LinkState.AWAITING_RETRY):
                    break
                logger.info("Retrying connection to %s in %.1fs", self.endpoint, self.retry_delay_s)
                if self._stop_event.wait(timeout=self.retry_delay_s):
                    break
        finally:
            self._close_transport()

    def _attempt(self) -> bool:
        if not self._transition(LinkState.CONNECTING):
            return False
        self._link_down = False
        self._subscribe_mid = None
        self._attempt_started = time.monotonic()

        logger.info("Connecting to MQTT broker %s", self.endpoint)
        try:
            self._client.connect(self.endpoint.host, self.endpoint.port, keepalive=self.keepalive)
        except Exception as exc:
            self._report_failure(f"connect failed: {exc}")
            return False
        return True

    def _pump(self) -> None:
        """Run the network loop until the link is lost or stop() is called."""
        while not self._stop_event.is_set() and not self._link_down:
            rc = self._client.loop(timeout=self.loop_timeout_s)
            if rc != mqtt.MQTT_ERR_SUCCESS:
                if not self._link_down:
                    self._link_lost(f"network loop returned {mqtt.error_string(rc)}")
                return
            if self.state is LinkState.CONNECTING and (
                time.monotonic() - self._attempt_started > self.connack_timeout_s
            ):
                self._report_failure("timed out waiting for the broker to accept the session")
                self._drop_session(self._client)
                return

    def _drop_session(self, client: mqtt.Client) -> None:
        self._link_down = True
        try:
            client.disconnect()
        except Exception:
            logger.exception("Error dropping MQTT session")

    def _close_transport(self) -> None:
        if self._client is None:
            return
        try:
            self._client.disconnect()
        except Exception:
            logger.exception("Error disconnecting MQTT")
        logger.info("Subscriber for %s stopped", self.endpoint)

    def _link_lost(self, reason: str) -> None:
        self._link_down = True
        if self.state is LinkState.CONNECTED:
            logger.warning("Disconnected from server %s (%s)", self.endpoint, reason)
        else:
            self._report_failure(reason)

    def _report_failure(self, reason: str) -> None:
        err = TransportConnectError(self.endpoint, reason)
        logger.error("Connection attempt failed: %s", err)
        if self._on_connection_error is not None:
            self._deliver(self._on_connection_error, err)

    def _deliver(self, sink: Callable[[Any], None], value: Any) -> None:
        try:
            sink(value)
        except Exception:
            logger.exception("Sink %r raised while handling %r", sink, value)

    # -------------------------
    # paho callbacks (worker thread)
    # -------------------------
    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        if reason_code.is_failure:
            self._report_failure(f"broker refused connection: {reason_code}")
            self._link_down = True
            return

        logger.info("Connected successfully to %s", self.endpoint)
        rc, mid = client.subscribe(self.topic, qos=self.qos)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            self._report_failure(f"subscribe to {self.topic} failed: {mqtt.error_string(rc)}")
            self._drop_session(client)
            return
        self._subscribe_mid = mid

    def _on_subscribe(self, client: mqtt.Client, userdata: Any, mid: int, reason_code_list: list, properties: Any = None) -> None:
        if mid != self._subscribe_mid:
            return
        failed = [rc for rc in reason_code_list if rc.is_failure]
        if failed:
            self._report_failure(f"broker rejected subscription to {self.topic}: {failed[0]}")
            self._drop_session(client)
            return
        if self._transition(LinkState.CONNECTED):
            logger.info("Subscribed: %s", self.topic)

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any = None) -> None:
        if self._link_down or self._stop_event.is_set():
            self._link_down = True
            return
        self._link_lost(f"reason {reason_code}")

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        if self._stop_event.is_set():
            return
        topic = msg.topic
        payload = bytes(msg.payload)
        logger.debug("Raw message received on topic %s: %r", topic, payload)
        if self._on_raw_message is not None:
            try:
                self._on_raw_message(topic, payload)
            except Exception:
                logger.exception("Raw message observer raised for topic %s", topic)

        result = decode_message(topic, payload)
        if isinstance(result, TagEvent):
            self._deliver(self._on_event, result)
        else:
            self._deliver(self._on_decode_failure, result)
