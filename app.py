import logging

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, jsonify
from config import Config
from routes import health_bp, booking_bp, payments_bp, webhook_bp

from models import db
from flask_migrate import Migrate
from services.errors import BookingError
from services.events import LoggingEventPublisher, RedisEventPublisher
from services.payments import StripePaymentCoordinator
from utils.auth_context import load_current_user
from utils.clock import SystemClock
from utils.ledger import get_ledger

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "sweep_expired_holds"
OUTBOX_REPLAY_JOB_ID = "replay_booking_events"


def create_app(config_object=Config, clock=None, publisher=None, payments=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Collaborators shared by routes, jobs and CLI
    app.extensions["slothold"] = {
        "clock": clock or SystemClock(),
        "publisher": publisher or _make_publisher(app),
        "payments": payments or StripePaymentCoordinator(
            secret_key=app.config.get("STRIPE_SECRET_KEY"),
            webhook_secret=app.config.get("STRIPE_WEBHOOK_SECRET"),
        ),
    }

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app


def _make_publisher(app):
    url = app.config.get("REDIS_URL")
    if not url:
        logger.info("REDIS_URL not set; booking events are logged only")
        return LoggingEventPublisher()
    return RedisEventPublisher.from_url(url, app.config.get("EVENT_CHANNEL", "booking-events"))

#-------------------------
# Background jobs

def run_sweep_job(app) -> int:
    count = 0
    with app.app_context():
        try:
            count = get_ledger(app).sweep_expired_holds()
            if count:
                logger.info("Sweeper expired %s holds", count)
        except Exception as e:
            # next tick tries again
            logger.warning("Sweeper run failed: %s", e, exc_info=True)
        finally:
            db.session.remove()
    return count


def run_outbox_replay_job(app):
    with app.app_context():
        try:
            get_ledger(app).relay.replay(app.config.get("OUTBOX_REPLAY_BATCH", 100))
        except Exception as e:
            logger.warning("Outbox replay failed: %s", e, exc_info=True)
        finally:
            db.session.remove()


def start_scheduler(app) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    if app.config.get("SWEEPER_ENABLED", True):
        scheduler.add_job(
            run_sweep_job,
            "interval",
            seconds=app.config.get("SWEEP_INTERVAL_SECONDS", 60),
            id=SWEEP_JOB_ID,
            args=[app],
            max_instances=1,
            coalesce=True,
        )
    if app.config.get("OUTBOX_REPLAY_ENABLED", True):
        scheduler.add_job(
            run_outbox_replay_job,
            "interval",
            seconds=app.config.get("OUTBOX_REPLAY_INTERVAL_SECONDS", 120),
            id=OUTBOX_REPLAY_JOB_ID,
            args=[app],
            max_instances=1,
            coalesce=True,
        )
    scheduler.start()
    app.extensions["slothold"]["scheduler"] = scheduler
    logger.info("Scheduler started jobs=%s", [j.id for j in scheduler.get_jobs()])
    return scheduler

#-------------------------
import time

import click

def register_cli(app):
    @app.cli.command("sweep-holds")
    def sweep_holds():
        """Expire holds whose deadline has passed (one run)."""
        count = get_ledger().sweep_expired_holds()
        print(f"Expired {count} holds")

    @app.cli.command("replay-events")
    @click.option("--limit", default=100, show_default=True, help="Max events to deliver.")
    def replay_events(limit):
        """Publish booking events that were committed but never delivered."""
        delivered = get_ledger().relay.replay(limit)
        print(f"Delivered {delivered} events")

    @app.cli.command("run-scheduler")
    def run_scheduler():
        """Run the sweeper and outbox replay jobs in the foreground."""
        scheduler = start_scheduler(app)
        try:
            while True:
                time.sleep(1)
        except (KeyboardInterrupt, SystemExit):
            scheduler.shutdown(wait=False)

#-------------------------




if __name__ == "__main__":
    app = create_app()
    start_scheduler(app)
    # Run locally
    app.run(host="127.0.0.1", port=5002)
