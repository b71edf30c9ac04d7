"""quotesync test suite."""
