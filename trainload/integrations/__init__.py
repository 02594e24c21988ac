"""Activity file readers."""
