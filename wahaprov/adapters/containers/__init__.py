"""Container adapters — docker compose."""

from wahaprov.adapters.containers.docker import DockerAdapter

__all__ = ["DockerAdapter"]
