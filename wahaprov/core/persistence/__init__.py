"""Persistence — atomic file writes and the run lock."""
