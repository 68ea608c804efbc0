"""Dimension normalization: dense local IDs for form types, extensions and companies."""
