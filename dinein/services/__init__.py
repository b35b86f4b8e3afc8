"""Service layer - authentication, provisioning, background jobs."""
