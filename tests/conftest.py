"""
Pytest configuration and shared fixtures
"""
import os
import sys
import threading
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import paho.mqtt.client as mqtt
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.reasoncodes import ReasonCode


RFID_ENV = [
    'RFID_MQTT_PORT',
    'RFID_BAC_NAME',
    'RFID_RETRY_DELAY_S',
    'RFID_KEEPALIVE_S',
    'RFID_CLIENT_ID',
    'RFID_LOG_LEVEL',
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every RFID_* variable so tests start from defaults"""
    for key in RFID_ENV:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def connack(name='Success'):
    return ReasonCode(PacketTypes.CONNACK, name)


def suback(name='Granted QoS 0'):
    return ReasonCode(PacketTypes.SUBACK, name)


class FakeMQTTMessage:
    def __init__(self, topic: str, payload: bytes):
        self.topic = topic
        self.payload = payload


class FakePahoClient:
    """
    Stand-in for paho.mqtt.client.Client driven by the subscriber's manual loop.

    connect_errors: exceptions raised by successive connect() calls (None = success).
    After a successful connect the next loop() delivers CONNACK, the one after
    that delivers SUBACK, then `messages` are delivered one per loop() call.
    Setting drop_after_messages makes the link drop once they are delivered.
    """

    def __init__(self, *args, **kwargs):
        self.ctor_kwargs = kwargs
        self.on_connect = None
        self.on_subscribe = None
        self.on_disconnect = None
        self.on_message = None

        self.connect_errors = []
        self.connack_name = 'Success'
        self.suback_name = 'Granted QoS 0'
        self.messages = []
        self.drop_after_messages = False

        self.connect_calls = []
        self.subscribe_calls = []
        self.disconnect_calls = 0
        self.connected_event = threading.Event()
        self.sessions = 0

        self._lock = threading.Lock()
        self._script = []
        self._next_mid = 1

    def connect(self, host, port, keepalive=60):
        with self._lock:
            self.connect_calls.append((host, port, keepalive))
            err = self.connect_errors.pop(0) if self.connect_errors else None
        if err is not None:
            raise err
        self._script = ['connack']
        return mqtt.MQTT_ERR_SUCCESS

    def subscribe(self, topic, qos=0):
        mid = self._next_mid
        self._next_mid += 1
        self.subscribe_calls.append((topic, qos))
        self._script.append(('suback', mid))
        return mqtt.MQTT_ERR_SUCCESS, mid

    def disconnect(self):
        self.disconnect_calls += 1
        self._script = []
        return mqtt.MQTT_ERR_SUCCESS

    def loop(self, timeout=1.0):
        if not self._script:
            threading.Event().wait(min(timeout, 0.01))
            return mqtt.MQTT_ERR_SUCCESS
        step = self._script.pop(0)
        if step == 'connack':
            rc = connack(self.connack_name)
            self.on_connect(self, None, {}, rc, None)
            if rc.is_failure:
                self.on_disconnect(self, None, {}, rc, None)
                return mqtt.MQTT_ERR_CONN_REFUSED
            return mqtt.MQTT_ERR_SUCCESS
        if isinstance(step, tuple) and step[0] == 'suback':
            self.on_subscribe(self, None, step[1], [suback(self.suback_name)], None)
            if not suback(self.suback_name).is_failure:
                self.sessions += 1
                self.connected_event.set()
                self._script.extend(('message', m) for m in self.messages)
                if self.drop_after_messages:
                    self._script.append('drop')
            return mqtt.MQTT_ERR_SUCCESS
        if isinstance(step, tuple) and step[0] == 'message':
            topic, payload = step[1]
            self.on_message(self, None, FakeMQTTMessage(topic, payload))
            return mqtt.MQTT_ERR_SUCCESS
        if step == 'drop':
            self.on_disconnect(self, None, {}, ReasonCode(PacketTypes.DISCONNECT, 'Unspecified error'), None)
            return mqtt.MQTT_ERR_CONN_LOST
        return mqtt.MQTT_ERR_SUCCESS


@pytest.fixture
def fake_paho_client(monkeypatch):
    """
    Patch paho.mqtt.client.Client to return a controllable fake.
    """
    fake = FakePahoClient()

    def _ctor(*args, **kwargs):
        fake.ctor_kwargs = kwargs
        return fake

    monkeypatch.setattr("paho.mqtt.client.Client", _ctor)
    return fake
