"""Shared building blocks: errors, error messages, logging, constants."""
