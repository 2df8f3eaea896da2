"""Plugin repositories (remote package sources)."""
