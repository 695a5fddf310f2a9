"""Core configuration, logging, errors and models."""
