"""
Movie Catalog Bot
Application factory and service wiring
"""
import atexit
import os
import sys
import logging
from dataclasses import dataclass
from typing import Optional

import flask.cli
flask.cli.show_server_banner = lambda *args: None

from flask import Flask
import structlog

from constants import DATA_DIR, CACHE_DIR, BUILD_VERSION
from settings import load_settings, verify_settings, storage_path
from utils import ColoredFormatter
from exceptions import register_exception_handlers
from metrics import init_metrics
from backup import BackupManager
from catalog import CatalogStore
from catalog_cache_file import FileSnapshotCache
from redis_cache import create_redis_client, RedisSnapshotCache
from channels import ChannelDirectory
from requests_ledger import RequestLedger
from telegram_client import TelegramClient
from delivery import DeliveryDispatcher
from ingest import IngestService
from bot_stats import BotStats
from auto_delete import AutoDeleteLedger
from bot import MovieBot

# Routes
from routes.webhook import webhook_bp, limiter
from routes.system import system_bp

# Jobs
from jobs.scheduler import JobScheduler

# Logging configuration
formatter = ColoredFormatter(
    '[%(asctime)s.%(msecs)03d] %(levelname)s (%(module)s) %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
handler = logging.StreamHandler(sys.stdout)
handler.setFormatter(formatter)

logging.basicConfig(
    level=logging.INFO,
    handlers=[handler]
)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if os.environ.get('LOG_FORMAT') == 'json' else structlog.dev.ConsoleRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger('main')


@dataclass
class BotServices:
    """Everything a request handler needs, built once per process"""
    settings: dict
    channels: ChannelDirectory
    catalog: CatalogStore
    ledger: RequestLedger
    telegram: TelegramClient
    delivery: DeliveryDispatcher
    ingest: IngestService
    bot_stats: BotStats
    auto_delete: Optional[AutoDeleteLedger]
    bot: MovieBot


def build_snapshot_cache(settings, data_dir=None):
    catalog = settings["catalog"]
    if catalog["cache_backend"] == "redis":
        client = create_redis_client(catalog["redis_url"])
        if client is not None:
            return RedisSnapshotCache(client, ttl=int(catalog["cache_expiry"]))
        logger.warning("redis_unavailable", fallback="file")
    cache_dir = os.path.join(data_dir, "cache") if data_dir else CACHE_DIR
    return FileSnapshotCache(os.path.join(cache_dir, settings["storage"]["cache_file"]))


def build_services(settings, data_dir=None, telegram=None):
    data_dir = data_dir or DATA_DIR
    lock_timeout = settings["catalog"]["lock_timeout"]

    channels = ChannelDirectory.from_settings(settings)
    catalog = CatalogStore.from_settings(
        settings,
        storage_path(settings, "catalog_file", data_dir),
        BackupManager(os.path.join(data_dir, "backups")),
        snapshot_cache=build_snapshot_cache(settings, data_dir),
        channels=channels,
    )
    ledger = RequestLedger.from_settings(settings, storage_path(settings, "requests_file", data_dir))
    telegram = telegram or TelegramClient.from_settings(settings)
    delivery = DeliveryDispatcher(telegram, channels)
    ingest = IngestService(catalog, ledger)
    bot_stats = BotStats(
        storage_path(settings, "users_file", data_dir),
        storage_path(settings, "stats_file", data_dir),
        lock_timeout=lock_timeout,
    )
    auto_delete = None
    if settings["auto_delete"]["enabled"]:
        auto_delete = AutoDeleteLedger.from_settings(settings, storage_path(settings, "auto_delete_file", data_dir))

    bot = MovieBot(
        settings, telegram, catalog, ledger, ingest, delivery, channels, bot_stats,
        auto_delete=auto_delete,
        pending_rejections_file=storage_path(settings, "pending_rejections_file", data_dir),
    )
    ingest.notifier = bot.send_requester_notification

    return BotServices(settings, channels, catalog, ledger, telegram, delivery, ingest, bot_stats, auto_delete, bot)


def create_app(settings=None, services=None, start_jobs=True):
    """Application factory"""
    if settings is None:
        settings = services.settings if services is not None else load_settings()

    success, errors = verify_settings(settings)
    for error in errors:
        logger.warning("settings_invalid", path=error["path"], error=error["error"])

    if services is None:
        services = build_services(settings)

    app = Flask(__name__)
    app.extensions["moviebot"] = services

    limiter.init_app(app)

    # Register exception handlers
    register_exception_handlers(app)

    # Register blueprints
    app.register_blueprint(webhook_bp)
    app.register_blueprint(system_bp)

    # Initialize metrics
    init_metrics(app)

    # Buffered catalog records must reach the ledger on shutdown
    atexit.register(services.catalog.flush)

    if start_jobs:
        job_scheduler = JobScheduler(services)
        job_scheduler.start()
        app.extensions["moviebot_scheduler"] = job_scheduler
        atexit.register(job_scheduler.shutdown)

    logger.info("app_started", version=BUILD_VERSION, settings_valid=success)
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host=os.environ.get('HOST', '0.0.0.0'), port=int(os.environ.get('PORT', 8465)))
