"""Common utilities for corpbank: settings, errors, logging and metrics."""
