"""Data files shipped with the timer."""
