"""CONSOLE: mix graph, offline render, mastering and encoding."""
