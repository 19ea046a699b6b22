import logging

from flasgger import Swagger
from flask import Flask

from marketplace.config import Config
from marketplace.errors import register_error_handlers
from marketplace.extensions import db, jwt
from marketplace.identity import init_identity
from marketplace import models  # noqa: F401  register models

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    app = Flask(__name__)

    # Configuration
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    # Initialize Extensions
    db.init_app(app)
    jwt.init_app(app)
    init_identity(app)
    register_error_handlers(app)

    Swagger(app)

    # Register Blueprints
    from marketplace.routes.admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix='/admin')

    from marketplace.routes.partner import partner_bp
    app.register_blueprint(partner_bp, url_prefix='/partner')

    from marketplace.routes.services import services_bp
    app.register_blueprint(services_bp, url_prefix='/services')

    from marketplace.routes.payments import payments_bp
    app.register_blueprint(payments_bp, url_prefix='/payments')

    from marketplace.routes.organizations import identity_organizations_bp, organizations_bp
    app.register_blueprint(organizations_bp, url_prefix='/organizations')
    app.register_blueprint(identity_organizations_bp, url_prefix='/clerk-organizations')

    @app.route('/health')
    def health():
        try:
            db.session.execute(db.text('SELECT 1'))
            return {"service": "marketplace-service", "status": "healthy"}, 200
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {"service": "marketplace-service", "status": "unhealthy", "error": str(e)}, 503

    with app.app_context():
        db.create_all()

    logger.debug(app.url_map)
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=5000)
