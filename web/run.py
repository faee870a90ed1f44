#!/usr/bin/env python3
"""Run the CHIP-8 web front end."""

import logging

from app import app, initialize_emulator

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    initialize_emulator()
    print("CHIP-8 machine initialized")

    print("Starting web server at http://localhost:8080")
    app.run(debug=True, host='0.0.0.0', port=8080)
