"""Initialize the Flask app and its extensions."""

import datetime
import json
import os

import click
import firebase_admin
from firebase_admin import credentials, firestore
from flask import Flask, current_app, g, session
from flask.json.provider import DefaultJSONProvider
from google.cloud.firestore_v1.transforms import Sentinel
from werkzeug.middleware.proxy_fix import ProxyFix

from .core import constants
from .extensions import csrf, event_channel, mail


def _env_flag(name, default):
    return (os.environ.get(name) or default).lower() in ["true", "1", "t"]


class FirestoreJSONProvider(DefaultJSONProvider):
    """JSON provider that understands Firestore values."""

    @staticmethod
    def default(o):
        # Server timestamps are resolved by Firestore after the write
        if isinstance(o, Sentinel):
            return None
        if isinstance(o, (datetime.datetime, datetime.date)):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


def _init_firebase(app):
    """Initialize the Firebase Admin SDK from env, file or default credentials."""
    cred = None
    project_id = None

    # First, try to load from environment variable (for production)
    cred_json = os.environ.get("FIREBASE_CREDENTIALS_JSON")
    if cred_json:
        try:
            cred_info = json.loads(cred_json)
            project_id = cred_info.get("project_id")
            cred = credentials.Certificate(cred_info)
        except (json.JSONDecodeError, ValueError) as e:
            app.logger.error(f"Error parsing FIREBASE_CREDENTIALS_JSON: {e}")

    # If env var fails or is not present, try loading from file (for local dev)
    if not cred:
        cred_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)), "firebase_credentials.json"
        )
        if os.path.exists(cred_path):
            try:
                with open(cred_path, "r") as f:
                    cred_info = json.load(f)
                project_id = cred_info.get("project_id")
                cred = credentials.Certificate(cred_path)
            except (json.JSONDecodeError, ValueError) as e:
                app.logger.error(f"Error loading credentials from file: {e}")

    # If both methods fail, fallback to default credentials
    if not cred:
        try:
            cred = credentials.ApplicationDefault()
            project_id = os.environ.get("FIREBASE_PROJECT_ID")
        except Exception as e:
            app.logger.error(
                f"Could not find any valid credentials (env, file, or default): {e}"
            )

    if cred and not firebase_admin._apps:
        options = {"projectId": project_id} if project_id else None
        try:
            firebase_admin.initialize_app(cred, options)
        except ValueError:
            # This can happen if the app is already initialized, which is fine.
            app.logger.info("Firebase app already initialized.")


def _register_commands(app):
    @app.cli.command("seed-games")
    def seed_games_command():
        """Create or refresh the games catalogue."""
        from .games import seed_games

        total = seed_games(firestore.client())
        click.echo(f"Game seeding complete! Total games: {total}")

    @app.cli.command("sweep")
    @click.option("--dry-run", is_flag=True, help="Only report what would change.")
    @click.option("--verbose", is_flag=True, help="Log every action.")
    def sweep_command(dry_run, verbose):
        """Run the orphan reconciliation sweep."""
        from .sweep.models import total_changes
        from .sweep.services import run_sweep_for_app

        report = run_sweep_for_app(
            current_app, firestore.client(), dry_run=dry_run, verbose=verbose
        )
        click.echo(json.dumps(report, indent=2, default=str))
        verb = "would change" if dry_run else "changed"
        click.echo(f"Sweep {verb} {total_changes(report)} items.")


def create_app(test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__, instance_relative_config=True)
    app.json = FirestoreJSONProvider(app)

    # Load configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY") or "dev",
        # Default mail settings, used for sweep failure alerts
        MAIL_SERVER=os.environ.get("MAIL_SERVER") or "smtp.gmail.com",
        MAIL_PORT=int(os.environ.get("MAIL_PORT") or 587),
        MAIL_USE_TLS=_env_flag("MAIL_USE_TLS", "true"),
        MAIL_USE_SSL=_env_flag("MAIL_USE_SSL", "false"),
        MAIL_USERNAME=os.environ.get("MAIL_USERNAME"),
        MAIL_PASSWORD=os.environ.get("MAIL_PASSWORD"),
        MAIL_DEFAULT_SENDER=os.environ.get("MAIL_DEFAULT_SENDER")
        or "noreply@challenger.gg",
        SCRIM_RETENTION_DAYS=int(
            os.environ.get("SCRIM_RETENTION_DAYS") or constants.SCRIM_RETENTION_DAYS
        ),
        TOURNAMENT_RETENTION_DAYS=int(
            os.environ.get("TOURNAMENT_RETENTION_DAYS")
            or constants.TOURNAMENT_RETENTION_DAYS
        ),
        SWEEP_SCHEDULE_HOUR=int(
            os.environ.get("SWEEP_SCHEDULE_HOUR") or constants.SWEEP_SCHEDULE_HOUR
        ),
        SWEEP_SCHEDULE_MINUTE=int(
            os.environ.get("SWEEP_SCHEDULE_MINUTE") or constants.SWEEP_SCHEDULE_MINUTE
        ),
        SWEEP_SCHEDULER_ENABLED=_env_flag("SWEEP_SCHEDULER_ENABLED", "true"),
        SWEEP_INCLUDE_TOURNAMENTS=_env_flag("SWEEP_INCLUDE_TOURNAMENTS", "true"),
        SWEEP_ALERT_EMAIL=os.environ.get("SWEEP_ALERT_EMAIL"),
        EVENT_QUEUE_SIZE=int(
            os.environ.get("EVENT_QUEUE_SIZE") or constants.EVENT_QUEUE_SIZE
        ),
        EVENT_DISPATCHER_ENABLED=_env_flag("EVENT_DISPATCHER_ENABLED", "true"),
    )

    if test_config:
        app.config.update(test_config)

    # Initialize Firebase Admin SDK only if not in testing mode
    if not app.config.get("TESTING"):
        _init_firebase(app)

    # Initialize extensions
    mail.init_app(app)
    csrf.init_app(app)
    event_channel.init_app(app)

    # Register blueprints
    from . import auth as auth_bp

    app.register_blueprint(auth_bp.bp)

    from . import tournament as tournament_bp

    app.register_blueprint(tournament_bp.bp)

    from . import sweep as sweep_bp

    app.register_blueprint(sweep_bp.bp)

    from . import admin as admin_bp

    app.register_blueprint(admin_bp.bp)

    from . import error_handlers

    app.register_blueprint(error_handlers.error_handlers_bp)

    _register_commands(app)

    @app.route("/health")
    def health_check():
        """Perform a simple health check."""
        return "OK", 200

    @app.before_request
    def load_logged_in_user():
        """If a user_id is in the session, load the user data from Firestore and store it in g."""
        user_id = session.get("user_id")
        g.user = None
        if user_id is None:
            return

        try:
            db = firestore.client()
            user_doc = db.collection(constants.USERS).document(user_id).get()
            if user_doc.exists:
                g.user = user_doc.to_dict()
                g.user["uid"] = user_id  # Ensure uid is in the user object
            else:
                # User ID in session but no user in DB. Clear the session.
                session.clear()
                current_app.logger.warning(
                    f"User {user_id} in session but not found in Firestore."
                )
        except Exception as e:
            current_app.logger.error(f"Error loading user from session: {e}")
            session.clear()  # Clear session on error to be safe

    if app.config["EVENT_DISPATCHER_ENABLED"] and not app.config.get("TESTING"):
        from .events import EventDispatcher, log_event

        event_channel.subscribe(log_event)
        dispatcher = EventDispatcher(event_channel)
        dispatcher.start()
        app.extensions["event_dispatcher"] = dispatcher

    if app.config["SWEEP_SCHEDULER_ENABLED"] and not app.config.get("TESTING"):
        from .sweep.scheduler import CleanupScheduler

        scheduler = CleanupScheduler(app)
        scheduler.start()
        app.extensions["cleanup_scheduler"] = scheduler

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app
