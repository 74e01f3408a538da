from __future__ import annotations

import logging

from flask import Flask
from flask_cors import CORS

from billsplit.api.routes import api_bp
from billsplit.config import Config


def create_app() -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    CORS(app)  # ok for MVP; tighten later

    app.register_blueprint(api_bp)
    return app
