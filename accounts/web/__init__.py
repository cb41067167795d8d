"""
Web layer for the accounts service: FastAPI app, routes, schemas and
exception handlers.
"""
