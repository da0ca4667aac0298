"""AI writing assistant: preferences, prompt templates and model providers."""
