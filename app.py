# app.py
"""
Main Flask application entry point.
Initializes app, quote source, the background event loop, routes, and scheduler.
"""

import atexit
import logging
import os

from flask import Flask
from dotenv import load_dotenv

from config import get_config
from extensions import limiter
from providers import QuoteSourceFactory
from scheduler import start_scheduler
from services import EventLoopThread, QuoteService, RefreshService

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


def configure_logging(level='INFO'):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(config_name=None, quote_source=None):
    """Application factory pattern"""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app.config.from_object(get_config(config_name))
    configure_logging(app.config['LOG_LEVEL'])

    # Initialize extensions
    limiter.init_app(app)

    # Quote source and rate-limited quote stack
    if quote_source is None:
        quote_source = QuoteSourceFactory.create_source(app.config)

    runner = EventLoopThread()
    runner.start()

    quote_service = QuoteService.from_config(app.config, quote_source)
    runner.run(quote_service.start())

    app.quote_runner = runner
    app.quote_service = quote_service
    app.refresh_service = RefreshService(
        quote_service,
        stale_after_seconds=app.config['STALE_POSITION_SECONDS'],
    )

    # Register blueprints
    from routes.views import views_bp
    from routes.api import api_bp

    app.register_blueprint(views_bp)
    app.register_blueprint(api_bp, url_prefix='/api')

    # Start background scheduler (auto refresh stays off until requested)
    app.auto_refresh = start_scheduler(app)

    atexit.register(shutdown_app, app)

    logger.info("=" * 60)
    logger.info("FLASK APP INITIALIZED")
    logger.info(f"Environment: {config_name}")
    logger.info(f"Quote provider: {quote_source.get_provider_name()}")
    logger.info(f"Rate limit: {quote_service.dispatcher.limiter.effective_limit} calls/minute")
    logger.info(f"Stocks tracked: {', '.join(app.config['PORTFOLIO_STOCKS'])}")
    logger.info("=" * 60)

    return app


def shutdown_app(app):
    """Stop auto refresh, cancel queued quote calls and stop the event loop."""
    auto_refresh = getattr(app, 'auto_refresh', None)
    if auto_refresh is not None and auto_refresh.scheduler.running:
        auto_refresh.stop()
        auto_refresh.scheduler.shutdown(wait=False)

    runner = getattr(app, 'quote_runner', None)
    if runner is None or not runner.is_alive():
        return

    runner.run(app.quote_service.stop(), timeout=5)
    runner.stop()


if __name__ == '__main__':
    app = create_app()

    # Get port from environment variable (for Railway/Render)
    port = int(os.environ.get('PORT', 5012))

    app.run(
        host='0.0.0.0',
        port=port,
        debug=app.config['DEBUG'],
        use_reloader=False
    )
