"""
Platform-level modules shared by jobs and the API.

- secrets: token encryption and log redaction
- log_config: logging setup for entry points
- tenant_context: tenant scope for background jobs
"""
