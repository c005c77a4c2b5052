# dailydues/__init__.py

import click
from flask import Flask, current_app, jsonify
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException

from config import Config

db = SQLAlchemy()
jwt = JWTManager()


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)

    CORS(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Notifier is built once from immutable config and handed to services
    from .notifier import NotifierConfig, SlackNotifier

    app.extensions["dailydues.notifier"] = SlackNotifier(
        NotifierConfig.from_mapping(app.config)
    )

    # -----------------------------
    # JWT error handlers
    # -----------------------------
    @jwt.unauthorized_loader
    def unauthorized_callback(reason):
        return (
            jsonify(
                {
                    "message": "Missing or invalid auth token",
                    "error": reason,
                }
            ),
            401,
        )

    @jwt.invalid_token_loader
    def invalid_token_callback(reason):
        return (
            jsonify(
                {
                    "message": "Invalid auth token",
                    "error": reason,
                }
            ),
            422,
        )

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({"message": "Token has expired"}), 401

    # -----------------------------
    # Domain error handler
    # -----------------------------
    from .services.errors import DomainError

    @app.errorhandler(DomainError)
    def domain_error_callback(err):
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(Exception)
    def unhandled_error_callback(err):
        if isinstance(err, HTTPException):
            return err
        current_app.logger.exception("Unhandled error: %s", err)
        return jsonify({"message": "Internal server error", "error": "internal_error"}), 500

    # -----------------------------
    # IMPORT BLUEPRINTS (all routes)
    # -----------------------------
    from .routes.auth_routes import auth_bp
    from .routes.admin_routes import admin_bp
    from .routes.log_routes import logs_bp
    from .routes.challenge_routes import challenges_bp
    from .routes.leaderboard_routes import leaderboard_bp

    # -----------------------------
    # REGISTER BLUEPRINTS
    # -----------------------------
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(logs_bp, url_prefix="/api/logs")
    app.register_blueprint(challenges_bp, url_prefix="/api/challenges")
    app.register_blueprint(leaderboard_bp, url_prefix="/api/leaderboard")

    # -----------------------------
    # CLI
    # -----------------------------
    @app.cli.command("create-admin")
    @click.argument("email")
    @click.argument("username")
    @click.password_option()
    def create_admin_command(email, username, password):
        """Create an admin account."""
        from .models.user import User

        user = User(
            email=email.strip().lower(),
            username=username.strip(),
            name=username.strip(),
            role="admin",
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        click.echo(f"admin {user.username} created (id={user.id})")

    # -----------------------------
    # Health check
    # -----------------------------
    @app.route("/api/health")
    def health():
        return {"status": "ok"}

    # -----------------------------
    # DB init
    # -----------------------------
    with app.app_context():
        from . import models  # noqa: F401

        db.create_all()

    return app
