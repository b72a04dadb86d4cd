"""Core configuration, storage, errors and observability."""
