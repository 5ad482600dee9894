# routes/views.py
"""
Liveness route for deployment platforms.
"""

from flask import Blueprint, current_app

views_bp = Blueprint('views', __name__)


@views_bp.route('/health')
def health():
    """Health check endpoint for deployment platforms"""
    runner = getattr(current_app, 'quote_runner', None)
    if runner is None or not runner.is_alive():
        return {'status': 'unhealthy', 'reason': 'quote loop not running'}, 503
    return {'status': 'healthy'}, 200
