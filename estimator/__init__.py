import os
import logging
import sqlite3
from flask import Flask, jsonify, redirect, url_for
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy.engine import Engine

from .config import DevConfig, ProdConfig

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()


@event.listens_for(Engine, 'connect')
def _apply_pragmas(dbapi_conn, _record):
    """SQLite ignores foreign keys (and their cascades) unless asked."""
    if isinstance(dbapi_conn, sqlite3.Connection):
        cursor = dbapi_conn.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


def create_app(config_name: str | None = None, overrides: dict | None = None) -> Flask:
    """Application factory with environment based configuration.

    ``overrides`` is applied on top of the selected config class before any
    extension is initialised, so tests can point the app at another database.
    """
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)
    os.makedirs(app.instance_path, exist_ok=True)

    # Pick configuration
    env = config_name or os.getenv('ENV') or os.getenv('FLASK_ENV') or 'production'
    cfg_cls = DevConfig if env == 'development' else ProdConfig
    app.config.from_object(cfg_cls)
    if overrides:
        app.config.update(overrides)

    # Initialise logging
    logging.basicConfig(level=logging.DEBUG if app.debug else logging.INFO)

    db.init_app(app)
    migrate.init_app(app, db)

    # Ensure models loaded so tables can be created
    from estimator import models  # noqa
    with app.app_context():
        db.create_all()

    from estimator.errors import EstimatorError, user_message

    @app.route('/')
    def index():
        return redirect(url_for('estimates.list_estimates'))

    @app.errorhandler(EstimatorError)
    def estimator_error(err):
        app.logger.warning('%s: %s', err.code, err.message)
        payload = err.to_dict()
        payload['user_message'] = user_message(err)
        return jsonify(error=payload), err.status_code

    @app.errorhandler(404)
    def not_found(_):
        return jsonify(error={'code': 'NOT_FOUND', 'message': 'Not found', 'details': {}}), 404

    @app.errorhandler(500)
    def server_error(_):
        return jsonify(error={'code': 'INTERNAL_ERROR',
                              'message': 'Something went wrong. Please try again.',
                              'details': {}}), 500

    from estimator.clients.routes import bp as clients_bp
    from estimator.estimates.routes import bp as estimates_bp
    from estimator.estimate_templates.routes import bp as templates_bp
    from estimator.company import bp as company_bp
    from estimator.public.routes import bp as public_bp
    from estimator.webhooks.routes import bp as webhooks_bp
    from estimator.cli import company_cli

    app.register_blueprint(clients_bp, url_prefix='/clients')
    app.register_blueprint(estimates_bp, url_prefix='/estimates')
    app.register_blueprint(templates_bp, url_prefix='/templates')
    app.register_blueprint(company_bp, url_prefix='/company')
    app.register_blueprint(public_bp, url_prefix='/public')
    app.register_blueprint(webhooks_bp, url_prefix='/webhooks')
    app.cli.add_command(company_cli)

    return app
