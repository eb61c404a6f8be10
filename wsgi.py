"""WSGI entry point for the API server."""

import os

from api_app import create_app

app = create_app(os.getenv("FLASK_ENV", "production"))

if __name__ == "__main__":
    app.run(host=app.config["HOST"], port=app.config["PORT"], threaded=True)
