import logging
from collections.abc import Mapping

from flask import Flask
from flask_cors import CORS

from .config import Config
from .errors import register_error_handlers
from .extensions import db, notifier
from .routes import register_routes


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_object(Config)
    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_envvar("APP_SETTINGS", silent=True)

    log_level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    app.logger.setLevel(log_level)
    # worker threads log through module loggers, outside any app context
    logging.getLogger(__name__).setLevel(log_level)

    db.init_app(app)
    notifier.init_app(app)

    # Allow the storefront to talk to the API
    CORS(app,
         origins=app.config["CORS_ORIGINS"],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )

    register_error_handlers(app)
    register_routes(app)

    return app
