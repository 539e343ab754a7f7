from flask import Flask
from marshmallow import ValidationError
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_smorest import Api

from .config import PublishingSettings, load_config
from .routes import register_publish_routes
from .services.social.errors import PublishingError
from .utils.error_handlers import (
    handle_publishing_error,
    handle_runtime_error,
    handle_validation_error,
)


# instantiate the publishing API
def create_publish_app(runtime=None, config_overrides=None):
    app = Flask(__name__)

    # get actual client IP
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)

    # Load configuration (must not override Flask-Smorest keys)
    load_config(app)
    if config_overrides:
        app.config.update(config_overrides)

    app.config["API_TITLE"] = "Publishing API"
    app.config["API_VERSION"] = "v1"
    app.config["OPENAPI_VERSION"] = "3.0.3"
    app.config["OPENAPI_URL_PREFIX"] = "/api"
    app.config["OPENAPI_JSON_PATH"] = "openapi.json"
    app.config["OPENAPI_SWAGGER_UI_PATH"] = "/docs"
    app.config["OPENAPI_SWAGGER_UI_URL"] = "https://cdn.jsdelivr.net/npm/swagger-ui-dist/"

    api = Api(app)

    if runtime is None:
        from .services.social.runtime import configure_runtime
        runtime = configure_runtime(PublishingSettings.from_mapping(app.config))
    app.extensions["crosspost_runtime"] = runtime

    # Register custom error handlers
    app.errorhandler(ValidationError)(handle_validation_error)
    app.errorhandler(PublishingError)(handle_publishing_error)
    app.errorhandler(RuntimeError)(handle_runtime_error)

    register_publish_routes(app, api)

    return app
