#!/usr/bin/env python
"""Flask-Login integration: session user loading and JSON 401s."""

from __future__ import annotations

from flask import jsonify
from flask_login import LoginManager

login_manager = LoginManager()
login_manager.login_message = None


def init_auth(app):
    """Attach Flask-Login to the Flask app.

    Account registration and login live in a separate service; this app only
    resolves the session cookie to a ``User``.
    """
    from src.database.db_manager import User, db

    login_manager.init_app(app)
    login_manager.session_protection = app.config.get("SESSION_PROTECTION")

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        try:
            user = db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None
        if user is not None and not user.is_active:
            return None
        return user

    @login_manager.unauthorized_handler
    def _unauthorized():
        return jsonify({"error": "authentication_required"}), 401

    return login_manager


__all__ = ["login_manager", "init_auth"]
