# wsgi.py
"""
WSGI entry point for production deployment.
This is what gunicorn will import. Run a single worker: the outbound rate
limit is tracked in process memory.
"""

from app import create_app

# Create the app instance
app = create_app()

if __name__ == "__main__":
    app.run(use_reloader=False)
