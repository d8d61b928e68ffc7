"""Command line interface for ollama-relay."""
