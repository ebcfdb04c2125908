"""Tender HTTP API layer.

This package provides the Falcon ASGI application that admits events,
receives backend signals and exposes dispatch records.

Usage
-----
Create and run the application::

    from tender.api import create_app

    app = create_app()              # health-only mode
    app = create_app(dependencies)  # full mode with dispatch endpoints

"""

from tender.api.app import AppDependencies, create_app

__all__ = ["AppDependencies", "create_app"]
