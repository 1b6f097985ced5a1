import logging

from flask import Flask

from .config import Config
from .extensions import build_job_runner, build_workflow, cors


def _configure_logging(app: Flask):
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(level)


def create_app(config_class: type[Config] = Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    _configure_logging(app)

    # Extensions
    cors.init_app(app)

    workflow = build_workflow(app.config)
    app.extensions["rotate_workflow"] = workflow
    app.extensions["rotate_job_runner"] = build_job_runner(app.config, workflow)

    # Blueprints
    from .routes.pages import bp as pages_bp
    from .routes.rotate_api import bp as rotate_api

    app.register_blueprint(pages_bp)
    app.register_blueprint(rotate_api)

    return app
