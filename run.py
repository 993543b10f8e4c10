#!/usr/bin/env python3
"""
Entry point for the booking API.

Usage:
    python run.py

Environment Variables:
    FLASK_ENV / NODE_ENV: development, production or testing (default: development)
    PORT: Port to run on (default: 3001)
    LOG_LEVEL: Logging level (default: INFO)
"""
import os
import logging


def run_api():
    """Run the HTTP and websocket server."""
    from booking_api.app import create_app, server_options
    from booking_api.realtime import socketio

    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    app = create_app()
    settings = app.settings['app']

    print(f"Starting booking API on port {settings.port} ({settings.node_env})...")
    socketio.run(app, **server_options(settings))


if __name__ == '__main__':
    run_api()
