"""Configuration — section models, settings merge, discovery, logging."""
