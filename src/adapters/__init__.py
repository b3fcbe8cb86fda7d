"""Adapters that connect the core pipeline to HTTP services and files."""
