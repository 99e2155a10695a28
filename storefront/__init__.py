# --- storefront/__init__.py ---
from flask import Flask
from .config import Config
from .extensions import db, jwt, cors, migrate
from .errors import register_error_handlers
from .utils.api import ok
from .utils.logger import configure_logging, log


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    config_object = config_object or Config
    app.config.from_object(config_object)
    config_object.init_app(app)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_FILE"))

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/*": {"origins": "*"}})
    migrate.init_app(app, db)

    register_error_handlers(app)

    # Register blueprints
    from .auth import bp as auth_bp; app.register_blueprint(auth_bp)
    from .product import bp as product_bp; app.register_blueprint(product_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)
    from .admin import bp as admin_bp; app.register_blueprint(admin_bp)

    @app.get("/")
    def health():
        return ok("API running")

    from .cli import register_cli
    register_cli(app)

    with app.app_context():
        db.create_all()

    log.debug("blueprints: {}", sorted(app.blueprints.keys()))
    return app
