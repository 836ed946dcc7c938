"""Core engine primitives (game events).

Kept free of FastAPI concerns so it can be reused by API routes, scripts, and tests.
"""
