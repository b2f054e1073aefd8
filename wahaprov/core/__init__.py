"""Core — models, services, engine and configuration for provisioning runs."""
