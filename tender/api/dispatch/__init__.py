"""Dispatch API resources.

Usage
-----
Import resources for route registration::

    from tender.api.dispatch.resources import EventsResource
"""
