"""Web interface for Reddit Radar."""
