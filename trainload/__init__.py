"""Trainload: activity file ingestion and fitness trend analytics."""

__version__ = "0.1.0"
