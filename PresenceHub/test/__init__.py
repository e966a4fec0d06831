"""Tests for PresenceHub."""
