"""
Flask extensions initialization.
Centralized to avoid circular imports.
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from constants import DEFAULT_API_RATE_LIMIT

# Initialize extensions without app
limiter = Limiter(key_func=get_remote_address, default_limits=[DEFAULT_API_RATE_LIMIT])
