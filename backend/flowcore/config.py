"""Workflow configuration constants: single source of truth for all env vars."""

import os

# Temporal
TEMPORAL_ADDRESS = os.getenv("TEMPORAL_ADDRESS", "localhost:7233")
TEMPORAL_NAMESPACE = os.getenv("TEMPORAL_NAMESPACE", "default")
TASK_QUEUE = os.getenv("TEMPORAL_TASK_QUEUE", "crm-workflow-task-queue")

# Workflow type started for every compiled definition
GENERIC_WORKFLOW_NAME = "GenericWorkflow"

# Server binding: used by entrypoint / uvicorn
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# Outbound email: sender used when a send_email step has no explicit "from"
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "noreply@example.com")
