# File: backend/campus_attendance/__init__.py
"""Campus Attendance - Application Factory."""
import logging
import os
from datetime import timedelta

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)


def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Attendance core
    setup_attendance(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Add CLI commands
    register_commands(app)

    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'Campus Attendance',
            'version': '1.0.0'
        })

    return app


def setup_attendance(app: Flask) -> None:
    """Build the session controller for this app and expose it via app.extensions."""
    from campus_attendance.services.event_store import EventStore
    from campus_attendance.services.session_controller import AttendanceSessionController
    from campus_attendance.services.token_service import TokenService

    issuer = TokenService(
        secret_key=app.config['SECRET_KEY'],
        default_lifetime=timedelta(hours=app.config.get('DEFAULT_TOKEN_LIFETIME_HOURS', 24))
    )
    app.extensions['attendance'] = AttendanceSessionController(
        store=EventStore(),
        issuer=issuer,
        max_radius_meters=app.config.get('MAX_GEOFENCE_RADIUS_METERS'),
        reject_outside_radius=app.config.get('REJECT_OUTSIDE_RADIUS', True),
        accuracy_warn_meters=app.config.get('LOCATION_ACCURACY_WARN_METERS', 50)
    )


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from campus_attendance.api.events import events_bp
    from campus_attendance.api.attendance import attendance_bp

    app.register_blueprint(events_bp, url_prefix='/api/events')
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from campus_attendance.exceptions import AttendanceError
    from campus_attendance.utils.helpers import attendance_error_response, handle_error
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        return attendance_error_response(error)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error(error, 500)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e.description, e.code)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'message': 'Token has expired',
            'status_code': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Invalid token',
            'status_code': 401
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Authorization token required',
            'status_code': 401
        }), 401


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    logging.getLogger('campus_attendance').setLevel(level)

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
        logging.getLogger('campus_attendance').addHandler(file_handler)

        app.logger.setLevel(level)
        app.logger.info('Campus Attendance startup')


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import time
    import click

    from campus_attendance.exceptions import AttendanceError

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Create a demo event with a 100m geofence."""
        from campus_attendance.models import Event

        event = Event(
            title='Campus Orientation',
            location='Gymnasium',
            date='2025-06-01',
            latitude=14.5995,
            longitude=120.9842,
            radius_meters=100
        ).save()
        click.echo(f'Created event {event.id}: {event.title}')

    @app.cli.command('show-token')
    @click.argument('event_id', type=int)
    @click.option('--seconds', default=10, show_default=True, help='How long to keep the countdown running')
    def show_token(event_id, seconds):
        """Print an event's attendance QR code with a live countdown."""
        from campus_attendance.services.token_display import TokenDisplay

        controller = app.extensions['attendance']

        def print_remaining(display):
            click.echo(f'\r{display.state.value.upper():8} {display.time_remaining:<20}', nl=False)

        try:
            with TokenDisplay(controller,
                              tick_seconds=app.config.get('COUNTDOWN_TICK_SECONDS', 1.0),
                              on_tick=print_remaining) as display:
                token = display.show(event_id)
                click.echo(controller.issuer.render_ascii(controller.issuer.encode(token)))
                time.sleep(seconds)
            click.echo()
        except AttendanceError as e:
            raise click.ClickException(f'{e.kind}: {e.message}')

    @app.cli.command('stop-attendance')
    @click.argument('event_id', type=int)
    def stop_attendance(event_id):
        """Close attendance for an event immediately."""
        try:
            app.extensions['attendance'].stop_attendance(event_id)
        except AttendanceError as e:
            raise click.ClickException(f'{e.kind}: {e.message}')
        click.echo(f'Attendance stopped for event {event_id}.')
