# Overview: WSGI entry point for Flask CLI and servers.

from riom import create_app

app = create_app()
