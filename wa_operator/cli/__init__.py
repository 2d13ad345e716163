"""CLI module for wa-operator."""
