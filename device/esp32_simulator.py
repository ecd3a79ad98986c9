#!/usr/bin/env python3
"""
Sensor Hub - ESP32 Device Simulator
Runs anywhere with Python and paho-mqtt

Publishes the same JSON the ESP32 firmware sends (BNO055 orientation
sensor + ultrasonic range finder) once per second, so the server can be
exercised without hardware:
1. Connects with a retained "offline" last will on .../status
2. Publishes "online" to .../status
3. Publishes a reading to .../state every PUBLISH_INTERVAL seconds

Usage: python3 esp32_simulator.py [device_id]
"""

import json
import math
import os
import random
import sys
import time

import paho.mqtt.client as mqtt

# ==================== CONFIGURATION ====================

MQTT_BROKER = os.getenv("MQTT_BROKER", "test.mosquitto.org")
MQTT_PORT = int(os.getenv("MQTT_PORT", "1883"))
MQTT_BASE_TOPIC = os.getenv("MQTT_BASE_TOPIC", "devices/esp32")

PUBLISH_INTERVAL = 1.0  # seconds

# Chance per reading that a sensor is reported missing (exercises optional fields)
BNO_FAILURE_RATE = float(os.getenv("BNO_FAILURE_RATE", "0.05"))
ULTRASONIC_MISS_RATE = float(os.getenv("ULTRASONIC_MISS_RATE", "0.1"))
# Chance per reading of sending a malformed payload instead
MALFORMED_RATE = float(os.getenv("MALFORMED_RATE", "0"))


# ==================== SENSORS (simulated) ====================

class SimulatedBNO055:
    """Slowly rotating orientation sensor."""

    def __init__(self):
        self.start = time.time()
        self.calib = {"sys": 0, "gyro": 0, "accel": 0, "mag": 0}

    def read(self) -> dict:
        t = time.time() - self.start

        # Calibration improves over the first minute, like the real sensor
        level = min(3, int(t // 20))
        self.calib = {"sys": level, "gyro": 3, "accel": level, "mag": level}

        def jitter(scale: float) -> float:
            return round(random.gauss(0, scale), 3)

        return {
            "ok": True,
            "heading_deg": round((t * 15) % 360, 2),
            "roll_deg": round(20 * math.sin(t / 3), 2),
            "pitch_deg": round(10 * math.cos(t / 5), 2),
            "temp_c": 24 + random.randint(0, 2),
            "linear_accel_ms2": {"x": jitter(0.05), "y": jitter(0.05), "z": jitter(0.05)},
            "gyro_rads": {"x": jitter(0.01), "y": round(math.radians(15), 3), "z": jitter(0.01)},
            "mag_uT": {"x": 22.5 + jitter(0.5), "y": -4.1 + jitter(0.5), "z": -40.2 + jitter(0.5)},
            "calib": dict(self.calib),
        }


class SimulatedUltrasonic:
    """Range finder bouncing between 10 and 200 cm."""

    def read(self) -> float | None:
        if random.random() < ULTRASONIC_MISS_RATE:
            return None  # no echo
        return round(105 + 95 * math.sin(time.time() / 4), 1)


# ==================== DEVICE ====================

class SimulatedDevice:
    """Publishes readings the way the firmware does."""

    def __init__(self, device_id: str):
        self.device_id = device_id
        self.topic_state = f"{MQTT_BASE_TOPIC}/{device_id}/state"
        self.topic_status = f"{MQTT_BASE_TOPIC}/{device_id}/status"
        self.bno = SimulatedBNO055()
        self.ultrasonic = SimulatedUltrasonic()
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=f"esp32-{device_id}")
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.running = False

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        print(f"✅ Connected to MQTT broker: {MQTT_BROKER}:{MQTT_PORT}")
        client.publish(self.topic_status, "online", qos=1, retain=True)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        print(f"⚠️ Disconnected from MQTT broker: {reason_code}")

    def build_payload(self) -> dict:
        """One reading in the firmware's JSON layout. Missing sensors are omitted."""
        payload = {
            "ts": int(time.time()),
            "device": self.device_id,
            "wifi": {"rssi": random.randint(-80, -40)},
        }

        if random.random() < BNO_FAILURE_RATE:
            payload["bno055"] = {"ok": False}
        else:
            payload["bno055"] = self.bno.read()

        distance = self.ultrasonic.read()
        if distance is not None:
            payload["ultrasonic_cm"] = distance

        return payload

    def publish_reading(self):
        if random.random() < MALFORMED_RATE:
            body = "{\"device\": \"" + self.device_id + "\", \"ts\": "
        else:
            body = json.dumps(self.build_payload(), separators=(",", ":"))

        result = self.client.publish(self.topic_state, body, qos=1)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            print(f"❌ Publish failed: {mqtt.error_string(result.rc)}")
        else:
            print(f"📤 {self.topic_state}: {body}")

    def run(self):
        print("🚀 ESP32 Simulator Starting...")
        print(f"📱 Device ID: {self.device_id}")
        print(f"📡 MQTT Broker: {MQTT_BROKER}:{MQTT_PORT}")

        self.client.will_set(self.topic_status, "offline", qos=1, retain=True)
        try:
            self.client.connect(MQTT_BROKER, MQTT_PORT, keepalive=30)
        except Exception as e:
            print(f"❌ Failed to connect to MQTT: {e}")
            return

        self.client.loop_start()
        self.running = True
        try:
            while self.running:
                self.publish_reading()
                time.sleep(PUBLISH_INTERVAL)
        except KeyboardInterrupt:
            print("\n⏹️ Stopping...")
        finally:
            self.client.publish(self.topic_status, "offline", qos=1, retain=True)
            self.client.loop_stop()
            self.client.disconnect()
            print("👋 Goodbye!")


if __name__ == "__main__":
    device_id = sys.argv[1] if len(sys.argv) > 1 else f"{random.getrandbits(48):012X}"
    SimulatedDevice(device_id).run()
