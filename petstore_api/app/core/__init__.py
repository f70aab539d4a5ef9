"""Configuration, logging, security helpers and the Redis connection pool."""
