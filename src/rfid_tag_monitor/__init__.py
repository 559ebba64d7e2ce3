"""
RFID Tag Monitor — MQTT client for BAC RFID readers.

Connects to a broker, subscribes to <bac>/get/rfidtag/<reader> reports,
decodes tag presence and prints it, reconnecting after a lost connection.
"""
