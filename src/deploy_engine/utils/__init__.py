"""Logging setup and operation decorators shared across the package."""
