"""Health probe resources.

Usage
-----
Import health resources for route registration::

    from tender.api.health.resources import HealthResource, ReadyResource
"""
