"""Flask backend for the CHIP-8 web front end."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from flask import Flask, jsonify, render_template, request
from flask_cors import CORS

# Ensure imports work when running as a script from this directory
CURRENT_DIR = Path(__file__).parent
PARENT_DIR = CURRENT_DIR.parent
if str(CURRENT_DIR) not in sys.path:
    sys.path.insert(0, str(CURRENT_DIR))
if str(PARENT_DIR) not in sys.path:
    sys.path.insert(0, str(PARENT_DIR))

from chip8.errors import InvalidKeyError, ProgramTooLargeError  # noqa: E402
from emulator_service import init_app, service  # noqa: E402

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Restrict CORS by default; allow opt-in via config/env
allowed_origins = app.config.get("WEB_ALLOWED_ORIGINS") or os.environ.get(
    "CHIP8_WEB_ALLOWED_ORIGINS"
)
if allowed_origins:
    if isinstance(allowed_origins, str):
        origins = [
            origin.strip() for origin in allowed_origins.split(",") if origin.strip()
        ]
    else:
        origins = allowed_origins
    if origins:
        CORS(app, resources={r"/api/*": {"origins": origins}})


def initialize_emulator() -> None:
    """Create the shared machine (used by tests and run.py)."""
    service.ensure_machine()


init_app(app)


@app.route("/")
def index():
    """Serve the main web interface."""
    return render_template("index.html")


@app.route("/api/v1/state", methods=["GET"])
def get_state():
    """Return the current machine state snapshot."""
    return jsonify(service.snapshot_state())


@app.route("/api/v1/key", methods=["POST"])
def handle_key():
    """Press or release a keypad key given as a hex digit."""
    data = request.get_json(silent=True) or {}
    key = data.get("key")
    if key is None or key == "":
        return jsonify({"error": "Missing key"}), 400

    action = data.get("action", "press")
    try:
        if action == "press":
            queued = service.press_key(key)
            message = f"Key {key} pressed" if queued else f"Key {key} already down"
        elif action == "release":
            service.release_key(key)
            queued = None
            message = f"Key {key} released"
        else:
            return jsonify({"error": f"Invalid action: {action}"}), 400
    except InvalidKeyError as exc:
        return jsonify({"error": str(exc)}), 400

    return jsonify({"status": "ok", "key_queued": queued, "message": message})


@app.route("/api/v1/control", methods=["POST"])
def control_emulator():
    """Control execution (run/pause/step/reset)."""
    data = request.get_json(silent=True) or {}
    command = data.get("command")
    if not command:
        return jsonify({"error": "Missing command"}), 400

    if command == "run":
        service.run()
        return jsonify({"status": "running"})
    if command == "pause":
        service.pause()
        return jsonify({"status": "paused"})
    if command == "step":
        if not service.step():
            return jsonify({"error": "Pause before stepping"}), 409
        return jsonify({"status": "stepped"})
    if command == "reset":
        service.reset()
        return jsonify({"status": "reset", "is_running": True})

    return jsonify({"error": f"Unknown command: {command}"}), 400


@app.route("/api/v1/load", methods=["POST"])
def load_program():
    """Load a raw program image from the request body."""
    data = request.get_data()
    if not data:
        return jsonify({"error": "Empty program"}), 400
    try:
        size = service.load_program(data)
    except ProgramTooLargeError as exc:
        return jsonify({"error": str(exc)}), 413
    return jsonify({"status": "loaded", "size": size})


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    initialize_emulator()
    print("Starting web server at http://localhost:8080")
    app.run(debug=True, host="0.0.0.0", port=8080)
