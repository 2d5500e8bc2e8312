"""Manifest parsing, include/profile composition and config-module expansion."""
