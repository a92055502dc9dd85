"""Export filtering, projection and serialization."""
