from flask import Flask, redirect, url_for
from flask_compress import Compress
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from dotenv import load_dotenv
from config.routes import initialize_routes
from config.db import initialize_db as initialize_sqlalchemy, db
from config.logging import get_logger, configure_quiet_logging
import models  # noqa: F401  registers the BOQ tables on db.metadata
import os

# Load environment variables from .env file
# Get the directory where this file is located (backend directory)
basedir = os.path.abspath(os.path.dirname(__file__))
# Load .env from the backend directory
load_dotenv(os.path.join(basedir, '.env'))

def create_app(test_config=None):
    app = Flask(__name__)
    app.config['SECRET_KEY'] = os.getenv("SECRET_KEY", "default-secret-key")

    if test_config:
        app.config.update(test_config)

    # Get environment (default to development)
    environment = os.getenv("ENVIRONMENT", "development")

    configure_quiet_logging()
    logger = get_logger()

    # Production configuration
    if environment == "production":
        app.config['SESSION_COOKIE_SECURE'] = True
        app.config['SESSION_COOKIE_HTTPONLY'] = True
        app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'
        app.config['PERMANENT_SESSION_LIFETIME'] = 3600  # 1 hour

    # Response Compression
    app.config['COMPRESS_MIMETYPES'] = [
        'text/html', 'text/css', 'text/xml', 'text/plain',
        'application/json', 'application/javascript', 'application/xml'
    ]
    app.config['COMPRESS_LEVEL'] = 6
    app.config['COMPRESS_MIN_SIZE'] = 500  # Only compress responses > 500 bytes
    Compress(app)

    # Rate limiting for the export endpoints (Redis when available, in-memory otherwise)
    redis_url = os.getenv('REDIS_URL', None)
    app.config.setdefault('RATELIMIT_ENABLED', not app.config.get('TESTING', False))
    limiter = Limiter(
        app=app,
        key_func=get_remote_address,
        default_limits=[],
        storage_uri=redis_url if redis_url else "memory://",
        strategy="fixed-window"
    )
    app.limiter = limiter  # Make limiter accessible to routes

    # Security Headers
    @app.after_request
    def set_security_headers(response):
        """Add security headers to all responses"""
        # Prevent MIME-type sniffing
        response.headers['X-Content-Type-Options'] = 'nosniff'

        # Prevent clickjacking
        response.headers['X-Frame-Options'] = 'DENY'

        # HSTS: Force HTTPS (only in production)
        if environment == "production":
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        # HTMX is served from unpkg; templates use inline handlers
        response.headers['Content-Security-Policy'] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline' https://unpkg.com; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data:; "
            "font-src 'self' data:"
        )

        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

        return response

    initialize_sqlalchemy(app)  # Init SQLAlchemy ORM

    # Create all tables
    with app.app_context():
        db.create_all()

    @app.route('/')
    def index():
        return redirect(url_for('boq_routes.list_boqs_route'))

    initialize_routes(app)  # Register routes

    logger.info(f"BOQ app initialised ({environment}), database: {app.config['SQLALCHEMY_DATABASE_URI'].split('://')[0]}")
    return app

if __name__ == "__main__":
    app = create_app()
    environment = os.getenv("ENVIRONMENT", "development")
    port = int(os.getenv("PORT", 5000))
    debug = environment != "production"

    print(f">> Starting BOQ Estimator Server")
    print(f"   Environment: {environment}")
    print(f"   Port: {port}")
    print(f"   Debug: {debug}")
    print("=" * 60)

    app.run(host="0.0.0.0", port=port, debug=debug)
