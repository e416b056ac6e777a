"""URL shortener with a Redis cache in front of PostgreSQL and batched click counting."""
