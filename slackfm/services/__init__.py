"""Service layer for SlackFM."""
