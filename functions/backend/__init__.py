"""
Backend package for the contacts chat service.

This package provides a facade over Firestore and Firebase Auth, with
in-memory doubles for tests and local runs, plus a FastAPI application
exposing the facade over HTTP.
"""
