"""Admin HTTP API for the synchronization engine."""
