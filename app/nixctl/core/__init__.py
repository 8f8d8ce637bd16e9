"""Core infrastructure: paths, settings, host identity and theme."""
