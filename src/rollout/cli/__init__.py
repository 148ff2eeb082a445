"""Command line interface for rollout."""
