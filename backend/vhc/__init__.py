from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['PUBLIC_TOKEN_TTL_DAYS'] = int(os.getenv('PUBLIC_TOKEN_TTL_DAYS', '14'))
    app.config['VAT_RATE'] = float(os.getenv('VAT_RATE', '0.20'))
    app.config['AUTO_GENERATE_REPAIR_ITEMS'] = _env_bool('AUTO_GENERATE_REPAIR_ITEMS', True)

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .routes.iam import iam_bp  # staff login / identity
    from .routes.health_checks import vhc_bp  # health check detail, publish, close
    from .routes.repair_items import rpr_bp  # staff outcome actions
    from .routes.public import public_bp  # customer link (no login)
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(vhc_bp, url_prefix='/health-checks')
    app.register_blueprint(rpr_bp, url_prefix='/repair-items')
    app.register_blueprint(public_bp, url_prefix='/public')

    @app.teardown_appcontext
    def remove_session(exc=None):
        if SessionLocal is not None:
            SessionLocal.remove()

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            extra = getattr(e, 'extra', None)
            if extra:
                payload['error'].update(extra)
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()
