"""Shared infrastructure: settings, logging, errors, models and repositories."""
