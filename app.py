import os
from flask import Flask
from sqlalchemy import text

from config import get_config
from errors import register_error_handlers
from extensions import db, init_extensions
from logger import configure_app_logging
from utils import utcnow


def create_app(config_class=None):
    config_class = config_class or get_config()
    config_class.validate()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # ------------------------------------------------------------------------------------------
    # LOGGING
    # ------------------------------------------------------------------------------------------
    configure_app_logging(app)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
        os.makedirs(os.path.join(os.path.dirname(os.path.abspath(__file__)), "instance"), exist_ok=True)

    # --------------------------------------------------------------------------------------------------------------------------
    # Initialize extensions
    # ----------------------------------------------------------------------------------------------------------------------------
    init_extensions(app)
    import security  # noqa: F401  registers the Flask-Login request loader

    # ------------------------------------------------------------------------------------------------------------------------
    # Register blueprints
    # -----------------------------------------------------------------------------------------------------------------------
    def register_blueprints(app):
        from blueprints.auth import bp as auth_bp
        from blueprints.subscription import subscription_bp
        from blueprints.referral import referral_bp
        from blueprints.withdraw import withdraw_bp
        from blueprints.admin import admin_bp

        app.register_blueprint(auth_bp)
        app.register_blueprint(subscription_bp)
        app.register_blueprint(referral_bp)
        app.register_blueprint(withdraw_bp)
        app.register_blueprint(admin_bp)

    register_blueprints(app)
    register_error_handlers(app)

    from commands import register_commands
    register_commands(app)

    # ----------------------
    # Basic routes
    # ----------------------
    @app.route("/healthz")
    def healthz():
        try:
            db.session.execute(text("SELECT 1"))
            database = "ok"
        except Exception as e:
            app.logger.error(f"Health check database error: {e}")
            database = "unavailable"
        status = 200 if database == "ok" else 503
        return {"status": "ok" if status == 200 else "degraded", "database": database,
                "timestamp": utcnow().isoformat()}, status

    app.logger.info(f"Application started ({app.config.get('FLASK_ENV')})")
    return app


# ----------------------
# Local development
# ----------------------
if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    debug_mode = app.config.get("DEBUG", False)
    app.run(debug=debug_mode, host="0.0.0.0", port=port)

#=======================================================================================================
#------------------------THE END OF APP----------------------------------------------------------------
#==========================================================================================================
