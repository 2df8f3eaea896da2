"""Configuration schemas, file parsing and host config editing."""
