"""HTTP API for Gift Registry."""
