# Overview: WSGI entry point; FLASK_APP target for the CLI and for production servers.

from branchpos import create_app

app = create_app()
