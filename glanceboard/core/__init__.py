"""Shared infrastructure: configuration, logging, HTTP, time and health."""
