"""
CI Server module.

FastAPI service that records completed builds and answers recipient
queries for them. Run it with ``ci-notify-server`` or
``uvicorn ci_server.app:app``.
"""
