# ABOUTME: Shared utilities for logging, retries, redaction and console tables
# ABOUTME: Used by every pipeline stage and the CLI
