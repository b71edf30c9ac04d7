"""Base time units shared by the constant modules."""

BASE_SECOND_MS = 1000
BASE_MINUTE_MS = 60 * BASE_SECOND_MS
