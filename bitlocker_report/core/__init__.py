"""Core configuration, errors and report pipeline."""
