"""WSGI entry point for gunicorn.

Usage:
    gunicorn api_gateway.wsgi:app --bind 0.0.0.0:8000
"""
from api_gateway.bootstrap import build_app

app = build_app()
