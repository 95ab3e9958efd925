"""Forward-merge bot for chains of release branches."""
