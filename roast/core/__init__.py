"""Core plugin management: plugins, installers, storage and the manager."""
