"""Mirror Last.fm now-playing state into Slack user statuses."""

__version__ = "0.1.0"
