"""HTTP API for renostock."""
