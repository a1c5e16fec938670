# backend/brecho/__init__.py
from flask import Flask, jsonify, request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.categories import categories_bp, payment_methods_bp
    from .routes.products import products_bp
    from .routes.customers import customers_bp
    from .routes.suppliers import suppliers_bp
    from .routes.sellers import sellers_bp, sales_goals_bp
    from .routes.sales import sales_bp
    from .routes.expenses import expenses_bp
    from .routes.revenues import revenues_bp, recurring_bp
    from .routes.cash_flow import cash_flow_bp
    from .routes.goals import goals_bp, alerts_bp
    from .routes.commissions import commission_rules_bp, commissions_bp
    from .routes.reports import reports_bp, dashboard_bp
    from .routes.assistant import assistant_bp
    from .routes.leads import leads_bp
    from .routes.ledger import ledger_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(payment_methods_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(sellers_bp)
    app.register_blueprint(sales_goals_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(revenues_bp)
    app.register_blueprint(recurring_bp)
    app.register_blueprint(cash_flow_bp)
    app.register_blueprint(goals_bp)
    app.register_blueprint(alerts_bp)
    app.register_blueprint(commission_rules_bp)
    app.register_blueprint(commissions_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(assistant_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(ledger_bp)

    # Stale version_id updates and unique-constraint races
    @app.errorhandler(StaleDataError)
    @app.errorhandler(IntegrityError)
    def handle_concurrent_write(error):
        db.session.rollback()
        app.logger.warning("Concurrent write rejected on %s %s: %s", request.method, request.path, error)
        return jsonify({"error": "Record was changed by another request, reload and retry"}), 409

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ALLOWED_ORIGINS", []):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
