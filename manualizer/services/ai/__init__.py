"""AI analysis clients."""
