"""
Shared, cross-cutting code for the API.

`core/` holds the building blocks every feature uses (settings, the store
bootstrap and DB access). Keep feature-specific SQL and validation in the
corresponding feature package (e.g. `location/`).
"""
