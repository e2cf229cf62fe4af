"""Campus check-in service - Application Factory."""
import logging
import os
from typing import Dict, Optional

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
limiter = Limiter(key_func=get_remote_address)


def create_app(config_name: str = None, config_overrides: Optional[Dict] = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database
    setup_database(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'Campus Check-in',
            'version': '1.0.0'
        })

    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from attendance.api.attendance import attendance_bp
    from attendance.api.sessions import sessions_bp

    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')
    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from werkzeug.exceptions import HTTPException
    from attendance.utils.errors import (
        AttendanceError, GeofenceConfigurationError, SessionNotFoundError,
        TransientStoreError, ValidationError,
    )
    from attendance.utils.helpers import error_response, handle_error

    @app.errorhandler(400)
    def bad_request(error):
        return handle_error(error, 400)

    @app.errorhandler(404)
    def not_found(error):
        return handle_error(error, 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return handle_error(error, 405)

    @app.errorhandler(429)
    def too_many_requests(error):
        return handle_error(error, 429)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error(error, 500)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)

    @app.errorhandler(ValidationError)
    def validation_error(error):
        return error_response(str(error), 400)

    @app.errorhandler(GeofenceConfigurationError)
    def geofence_configuration_error(error):
        return error_response(str(error), 400)

    @app.errorhandler(SessionNotFoundError)
    def session_not_found(error):
        return error_response(str(error), 404)

    @app.errorhandler(TransientStoreError)
    def transient_store_error(error):
        db.session.rollback()
        return error_response(str(error), 503)

    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        db.session.rollback()
        app.logger.error('Unhandled attendance error: %s', error)
        return error_response(str(error), 500)


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    logging.getLogger('attendance').setLevel(level)

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(level)
        app.logger.addHandler(file_handler)
        logging.getLogger('attendance').addHandler(file_handler)

        app.logger.setLevel(level)
        app.logger.info('Campus check-in startup')


def setup_database(app: Flask) -> None:
    """Setup database connections."""
    with app.app_context():
        # Import all models so metadata is complete
        from attendance.models import (  # noqa: F401
            ClassSession, Enrollment, EnrollmentProjection,
            AttendanceRecord, AttendanceRejection,
            CheckinSignal, ProofAttemptCounter
        )


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('create-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def create_db(drop):
        """Create database tables."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('reconcile-enrollments')
    def reconcile_enrollments():
        """Bring the enrollment projection in line with the primary table."""
        from attendance.services.enrollment_service import EnrollmentIndex

        report = EnrollmentIndex.from_config(app.config).reconcile()
        db.session.commit()
        click.echo(
            f'Inserted {report.inserted}, retired {report.retired}, '
            f'orphaned {report.orphaned} projection rows.'
        )

    @app.cli.command('refresh-session-flags')
    def refresh_session_flags():
        """Recompute the cached is_active flag of every session."""
        from attendance.services.session_service import SessionService

        changed = SessionService.from_config(app.config).refresh_active_flags()
        click.echo(f'Updated {changed} sessions.')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Seed database with a demo session and enrollments."""
        from attendance.services.seed_service import SeedService

        summary = SeedService.seed_all()
        click.echo(f"Seeded session {summary['session_id']} "
                   f"with {summary['enrollments']} enrollments.")
