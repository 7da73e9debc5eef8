"""
Vendor proxy service.

This package provides a FastAPI application that forwards generation requests
to the AI vendors so their API keys stay on the server.
"""
