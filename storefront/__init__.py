import logging
from flask import Flask, jsonify
from .extensions import db, jwt, cors, migrate
from .config import Config


def create_app(config_object=Config):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)
    config_object.init_app(app)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("storefront").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)
    cors.init_app(app, resources={r"/*": {"origins": "*"}}, supports_credentials=True)
    migrate.init_app(app, db)

    from .services.gateway import RazorpayGateway
    app.extensions["payment_gateway"] = RazorpayGateway(
        key_id=app.config["RAZORPAY_KEY_ID"],
        key_secret=app.config["RAZORPAY_KEY_SECRET"],
        currency=app.config["RAZORPAY_CURRENCY"],
        timeout=app.config["PAYMENT_TIMEOUT_SECONDS"],
    )

    # Register blueprints
    from .cart import bp as cart_bp; app.register_blueprint(cart_bp)
    from .coupon import bp as coupon_bp; app.register_blueprint(coupon_bp)
    from .offer import bp as offer_bp; app.register_blueprint(offer_bp)
    from .order import bp as order_bp; app.register_blueprint(order_bp)
    from .wallet import bp as wallet_bp; app.register_blueprint(wallet_bp)
    from .report import bp as report_bp; app.register_blueprint(report_bp)

    from .utils.errors import register_error_handlers
    register_error_handlers(app)

    from .cli import register_cli
    register_cli(app)

    @app.get("/")
    def health():
        return jsonify(ok=True, msg="API running")

    with app.app_context():
        from . import model  # noqa: F401  (register tables)
        db.create_all()

    return app
