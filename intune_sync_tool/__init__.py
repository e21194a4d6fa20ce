"""
Intune Sync Tool package exposing CLI and helper modules.
"""

__all__ = [
    "cli",
    "config",
    "device_directory",
    "graph_client",
    "logging_utils",
    "models",
    "orchestrator",
    "sync_invoker",
    "teams_webhook",
    "utils",
]
