"""Tests for the sync services."""
