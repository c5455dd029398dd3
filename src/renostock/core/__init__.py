"""Business logic for renostock."""
