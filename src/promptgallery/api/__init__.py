"""Prompt Gallery - FastAPI REST API layer.

This package contains the FastAPI application, the Pydantic response models
and the gallery listing helpers.

Modules
-------
main
    FastAPI application factory, all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
gallery_store
    Category filtering, sorting and pagination of gallery records.
"""
