"""HTTP status endpoint for the relay hub."""
