from flask import Flask
from flask_cors import CORS

from backend.logging_config import setup_logging
from config import Config


def create_app(config_object=Config, backend=None):
    app = Flask(__name__)
    app.config.from_object(config_object)
    CORS(app)

    if not app.testing:
        setup_logging(app.config["LOG_LEVEL"], app.config["LOG_FORMAT"])

    # Tests hand in a backend built on fake tables; otherwise it is created on first use
    if backend is not None:
        app.extensions["organ_backend"] = backend

    # Register blueprints
    from routes.api_routes import api_bp

    app.register_blueprint(api_bp)

    return app

# Create the app instance for Vercel
app = create_app()

# Vercel handler
def handler(request, *args, **kwargs):
    return app(request, *args, **kwargs)

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5000)
