"""api/ -- HTTP surface: FastAPI app, request/response models, routes."""
