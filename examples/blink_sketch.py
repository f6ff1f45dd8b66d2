"""Example script that creates a code sketch on the server, saves it and runs it."""
from __future__ import annotations

import requests

BASE_URL = "http://localhost:8000/api"

BLINK = """#include <Arduino.h>

void setup() {
  pinMode(LED_BUILTIN, OUTPUT);
}

void loop() {
  digitalWrite(LED_BUILTIN, HIGH);
  delay(500);
  digitalWrite(LED_BUILTIN, LOW);
  delay(500);
}"""


def main() -> None:
    res = requests.post(f"{BASE_URL}/sketch/new", json={"device": "cm:esp8266:nibble", "kind": "code"}, timeout=5)
    res.raise_for_status()
    requests.put(f"{BASE_URL}/code", json={"text": BLINK}, timeout=5).raise_for_status()
    requests.post(f"{BASE_URL}/sketch/save-as/filename", json={"filename": "Blink"}, timeout=5).raise_for_status()
    requests.post(f"{BASE_URL}/sketch/save-as/submit", timeout=5).raise_for_status()
    res = requests.post(f"{BASE_URL}/job/run", timeout=5)
    res.raise_for_status()
    print(res.json())


if __name__ == "__main__":
    main()
