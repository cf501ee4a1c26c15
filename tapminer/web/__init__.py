from .flask_app import create_app
