"""Test suite for the compensation search service."""
