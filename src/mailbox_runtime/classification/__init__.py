"""Server classification: choosing the adapter for an unknown server."""
