"""
Smoke test — hit every critical endpoint and verify responses.
Run AFTER starting the backend:  python -m circuit_backend.diagram_server

Usage:
    python -m circuit_backend.smoke_test
"""
import json
import os
import sys
import time
import urllib.error
import urllib.parse
import urllib.request

BASE = os.environ.get("SMOKE_BASE_URL", "http://127.0.0.1:8765")
PASS = "✓"
FAIL = "✗"

# (label, request body) rendered through POST /diagram
DIAGRAM_CASES = [
    ("battery-powered blink", {
        "circuitName": "Smoke Battery Blink",
        "componentsUsed": ["Arduino Nano", "LED (Red)", "Resistor (220Ω)", "9V Battery"],
        "connections": [
            "Battery + → Arduino VIN",
            "Battery - → Arduino GND",
            "Arduino D13 → Resistor A",
            "Resistor B → LED Anode",
            "LED Cathode → Arduino GND",
        ],
    }),
    ("ultrasonic sensor", {
        "circuitName": "Smoke Distance Sensor",
        "componentsUsed": ["Arduino Nano", "HC-SR04 Ultrasonic Sensor"],
        "connections": [
            "Sensor VCC → Arduino 5V",
            "Sensor TRIG → Arduino D10",
            "Sensor ECHO → Arduino D11",
            "Sensor GND → Arduino GND",
        ],
    }),
]


def _get(path: str):
    with urllib.request.urlopen(f"{BASE}{path}", timeout=10) as r:
        return json.loads(r.read())


def _post(path: str, body: dict, timeout: int = 60) -> dict:
    req = urllib.request.Request(
        f"{BASE}{path}",
        data=json.dumps(body).encode(),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    with urllib.request.urlopen(req, timeout=timeout) as r:
        return json.loads(r.read())


def check(label: str, ok: bool, detail: str = "") -> bool:
    sym = PASS if ok else FAIL
    msg = f"  {sym}  {label}"
    if detail:
        msg += f"  →  {detail}"
    print(msg)
    return ok


def main():
    print("\n=== Circuit Diagram Backend Smoke Test ===\n")
    all_passed = True

    # ── /health ───────────────────────────────────────────────────────────────
    try:
        h = _get("/health")
        ok = h.get("status") == "healthy"
        all_passed &= check("/health", ok,
            f"llm={h.get('llm_loaded')}  components={h.get('components_available')}")
    except (urllib.error.URLError, ValueError) as e:
        all_passed &= check("/health", False, str(e))

    # ── /circuits ─────────────────────────────────────────────────────────────
    first_circuit = None
    try:
        cs = _get("/circuits")
        ok = isinstance(cs, list) and len(cs) >= 1
        names = [c["name"] for c in cs]
        first_circuit = names[0] if names else None
        all_passed &= check(f"/circuits ({len(cs)} found)", ok, str(names))
    except (urllib.error.URLError, ValueError, KeyError) as e:
        all_passed &= check("/circuits", False, str(e))

    # ── /diagram for each case ────────────────────────────────────────────────
    print()
    last_filename = None
    for label, body in DIAGRAM_CASES:
        try:
            t0 = time.time()
            r = _post("/diagram", body)
            elapsed = time.time() - t0
            ok = r.get("success") is True and r.get("wire_count") == len(body["connections"])
            all_passed &= check(
                f"/diagram [{label}]", ok,
                f"comps={r.get('component_count')}  wires={r.get('wire_count')}  "
                f"skipped={r.get('skipped_components')}  {elapsed:.1f}s",
            )
            if r.get("download_url"):
                last_filename = r["download_url"].split("/")[-1]
        except (urllib.error.URLError, ValueError) as e:
            all_passed &= check(f"/diagram [{label}]", False, str(e))

    # ── /circuits/{name}/diagram ──────────────────────────────────────────────
    if first_circuit:
        try:
            quoted = urllib.parse.quote(first_circuit)
            r = _post(f"/circuits/{quoted}/diagram", {})
            all_passed &= check(f"/circuits/{first_circuit[:30]}/diagram",
                                r.get("success") is True, f"wires={r.get('wire_count')}")
        except (urllib.error.URLError, ValueError) as e:
            all_passed &= check("/circuits/{name}/diagram", False, str(e))

    # ── /download ─────────────────────────────────────────────────────────────
    if last_filename:
        try:
            with urllib.request.urlopen(f"{BASE}/download/{last_filename}", timeout=10) as resp:
                body = resp.read()
            ok = body.startswith(b"<?xml") and b"<svg" in body
            all_passed &= check(f"/download/{last_filename[:30]}", ok, f"{len(body)} bytes")
        except urllib.error.URLError as e:
            all_passed &= check("/download", False, str(e))

    # ── summary ───────────────────────────────────────────────────────────────
    print()
    if all_passed:
        print(f"  {PASS}  All checks passed — backend is ready.\n")
        sys.exit(0)
    print(f"  {FAIL}  Some checks failed — see above.\n")
    sys.exit(1)


if __name__ == "__main__":
    main()
