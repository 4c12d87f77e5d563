"""WSGI entrypoint for the recipeshare API.

Containerized deployments serve ``main:app`` with Gunicorn. Local development
can use ``flask --app main run`` which imports the ``app`` object defined
below.
"""

from recipeshare import create_app

app = create_app()


__all__ = ["app"]
