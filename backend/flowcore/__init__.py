"""Workflow core package.

Subpackages:
- authoring: Authoring definition model and the runtime compiler
- access: Role, field visibility and notification recipient resolution
- tasks: Task claim/approval/status state machine and workflow signals
- temporal: Temporal workflow/activity definitions and worker
"""
