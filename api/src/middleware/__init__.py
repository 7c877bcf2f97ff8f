"""FastAPI middleware and access-control components."""
