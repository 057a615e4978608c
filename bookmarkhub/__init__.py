import logging
import sys

from flask import Flask, render_template
from flask.logging import default_handler

from bookmarkhub.api import api_bp
from bookmarkhub.auth import auth_bp
from bookmarkhub.config import Config
from bookmarkhub.extensions import auth_client, db, login_manager, migrate
from bookmarkhub.services.security import init_session_gate
from bookmarkhub.web import web_bp


_log_handler = logging.StreamHandler(sys.stdout)
_log_handler.setFormatter(
    logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s")
)


def _configure_logging(app):
    level = logging.DEBUG if app.debug else logging.INFO
    # app.logger is the "bookmarkhub" logger; service loggers propagate to it
    app.logger.setLevel(level)
    app.logger.removeHandler(default_handler)
    if _log_handler not in app.logger.handlers:
        app.logger.addHandler(_log_handler)


def create_app(config_object=Config):
    app = Flask(__name__, template_folder="../templates", static_folder="../static")
    app.config.from_object(config_object)

    _configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    login_manager.login_view = "auth.signin"
    login_manager.session_protection = None
    auth_client.init_app(app)

    init_session_gate(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(web_bp)
    app.register_blueprint(api_bp)

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized BookmarkHub database.")

    @app.context_processor
    def inject_globals():
        return {"app_name": "BookmarkHub"}

    @app.errorhandler(404)
    def not_found(_error):
        return render_template("not_found.html"), 404

    with app.app_context():
        db.create_all()

    return app
