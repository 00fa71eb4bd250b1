"""CLI module for metals-standalone."""
