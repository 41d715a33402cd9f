"""Flask app factory. Registers blueprints and wires the backing services."""

from flask import Flask, jsonify, request
from flask_cors import CORS

from config import Config
from readingmemory.errors import register_error_handlers
from readingmemory.utils.logger import configure_logging, get_logger
from readingmemory.utils.timestamp import utc_now_iso

logger = get_logger(__name__)


def create_app(config=Config, firestore_client=None, auth_client=None, storage_bucket=None,
               gemini=None, book_search=None):
    """
    Application factory function that creates and configures the Flask app.

    Any client passed in is used as-is; the rest are created from ``config``.
    Tests pass fakes for all of them so nothing talks to Google.

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)
    app.config.from_object(config)
    app.config['MAX_CONTENT_LENGTH'] = config.JSON_BODY_LIMIT

    configure_logging(config.LOG_LEVEL)
    CORS(app, origins=config.CORS_ORIGIN)

    # Initialize services
    from readingmemory.services.book_search_service import BookSearchService
    from readingmemory.services.firebase_service import default_storage_bucket, init_firebase
    from readingmemory.services.gemini_service import init_gemini

    if firestore_client is None:
        firestore_client = init_firebase(
            config.FIREBASE_CREDENTIALS_PATH,
            project_id=config.GCP_PROJECT_ID,
            storage_bucket=config.STORAGE_BUCKET,
        )
        if storage_bucket is None:
            storage_bucket = default_storage_bucket()

    if gemini is None:
        gemini = init_gemini(config.GEMINI_API_KEY, config.GEMINI_MODEL)

    if book_search is None:
        book_search = BookSearchService(config.GOOGLE_BOOKS_API_KEY, timeout=config.BOOK_API_TIMEOUT)

    app.extensions['firestore'] = firestore_client
    app.extensions['storage_bucket'] = storage_bucket
    app.extensions['gemini'] = gemini
    app.extensions['book_search'] = book_search
    if auth_client is not None:
        app.extensions['firebase_auth'] = auth_client

    # Register blueprints
    from readingmemory.api.achievements import achievements_bp
    from readingmemory.api.activities import activities_bp
    from readingmemory.api.ai import ai_bp
    from readingmemory.api.auth import auth_bp
    from readingmemory.api.books import books_bp
    from readingmemory.api.chats import chats_bp
    from readingmemory.api.goals import goals_bp
    from readingmemory.api.images import images_bp
    from readingmemory.api.profile import profile_bp
    from readingmemory.api.public import public_bp
    from readingmemory.api.streaks import streaks_bp
    from readingmemory.api.users import users_bp

    app.register_blueprint(auth_bp, url_prefix='/api/v1/auth')
    app.register_blueprint(profile_bp, url_prefix='/api/v1/profile')
    app.register_blueprint(users_bp, url_prefix='/api/v1/users')
    app.register_blueprint(ai_bp, url_prefix='/api/v1/users')
    app.register_blueprint(books_bp, url_prefix='/api/v1/books')
    app.register_blueprint(chats_bp, url_prefix='/api/v1/books')
    app.register_blueprint(public_bp, url_prefix='/api/v1/public')
    app.register_blueprint(activities_bp, url_prefix='/api/v1/activities')
    app.register_blueprint(goals_bp, url_prefix='/api/v1/goals')
    app.register_blueprint(images_bp, url_prefix='/api/v1/images')
    app.register_blueprint(achievements_bp, url_prefix='/api/v1/achievements')
    app.register_blueprint(streaks_bp, url_prefix='/api/v1/streaks')

    register_error_handlers(app)

    @app.before_request
    def log_request():
        logger.info('Incoming request', extra={
            'method': request.method,
            'path': request.path,
            'query': request.args.to_dict(),
            'ip': request.remote_addr,
        })

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'timestamp': utc_now_iso(),
        }), 200

    return app
