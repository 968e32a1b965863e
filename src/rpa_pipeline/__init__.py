# ABOUTME: rpa-pipeline turns inbound request emails into executed automation jobs
# ABOUTME: Classification, extraction, durable delivery, workflow execution and notification

__version__ = "0.1.0"
