"""AI assistant: backends, tool bridge and conversation orchestration."""
