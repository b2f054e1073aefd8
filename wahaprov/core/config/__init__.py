"""Configuration — deployment profiles and the spec loader."""
