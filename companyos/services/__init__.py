"""Business logic services for AI policy and expiration monitoring."""
