"""Read-only HTTP surface over a deployment."""
