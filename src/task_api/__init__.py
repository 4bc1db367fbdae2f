"""
Task Tracker API package.

Authenticated users manage private todo records over a JSON HTTP API.
The FastAPI application lives in task_api.main (app, create_app).
"""

__version__ = "1.0.0"
