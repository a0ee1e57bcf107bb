"""HTTP surface: webhook endpoint, health checks and middleware."""
