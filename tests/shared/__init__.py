"""Tests for shared errors, messages and logging."""
