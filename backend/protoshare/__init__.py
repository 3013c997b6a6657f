"""Application package for the prototype sharing backend.

This package exposes the service, repository and model modules used by
the FastAPI application in `protoshare.main`. Individual modules contain
the concrete implementations and documentation.
"""
