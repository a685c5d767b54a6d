"""Checkpoints, resumable steps and retry policy for sync jobs."""
