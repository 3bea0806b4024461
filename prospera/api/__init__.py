"""HTTP surface of the Prospera backend (FastAPI app and Lambda adapter)."""
