"""Flask application factory for the hub status endpoint."""

import threading
from typing import Optional

from flask import Flask
from werkzeug.serving import make_server

from web.api import api_bp
from config import STATUS_HTTP_HOST, STATUS_HTTP_PORT
from utils.logger import logger


def create_app(hub=None) -> Flask:
    """Create and configure the Flask application.

    Args:
        hub: Running RelayServer instance whose stats are reported.
    """
    app = Flask(__name__)
    app.config["HUB"] = hub
    app.json.sort_keys = False

    app.register_blueprint(api_bp)

    return app


class StatusServer:
    """Serves the status app from a background thread beside the hub's event loop."""

    def __init__(self, hub, host: str = STATUS_HTTP_HOST, port: int = STATUS_HTTP_PORT):
        self.host = host
        self.port = port
        self.app = create_app(hub)
        self._server = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Bind the HTTP port and start serving. Raises OSError if the port is taken."""
        self._server = make_server(self.host, self.port, self.app, threaded=True)
        self.port = self._server.server_port
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="status-http", daemon=True,
        )
        self._thread.start()
        logger.info(f"Status endpoint listening on http://{self.host}:{self.port}")

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
