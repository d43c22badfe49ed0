"""FastAPI service for the Entity API.

This package provides REST API endpoints for creating, reading, listing,
updating and deleting generic entities stored in PostgreSQL.
"""

__version__ = "1.0.0"
