"""HTTP adapter (FastAPI) for the tenant drive runtime."""
