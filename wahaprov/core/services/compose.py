"""
Compose file patching — image and published-port rewrites.

The upstream compose files pin the paid ``waha-plus`` image and publish
ports on 127.0.0.1 only. This rewrites both through PyYAML and writes
the result atomically. Comments in the compose file are not preserved.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from wahaprov.core.errors import FetchError
from wahaprov.core.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)

WAHA_IMAGE_REPOS = ("devlikeapro/waha", "devlikeapro/waha-plus")
WAHA_REPO = WAHA_IMAGE_REPOS[0]

PortMap = dict[int, tuple[int, int]]


def _image_repo(image: str) -> str:
    name, _, _tag = image.partition(":")
    return name


def _service_repo(image: Any) -> str | None:
    """Repository a service runs, with every WAHA flavour folded into ``WAHA_REPO``."""
    if not isinstance(image, str):
        return None
    repo = _image_repo(image)
    return WAHA_REPO if repo in WAHA_IMAGE_REPOS else repo


def _rewrite_port(entry: Any, ports: PortMap) -> Any:
    """Rewrite a short-syntax mapping whose container port is in ``ports``."""
    if not isinstance(entry, (str, int)):
        return entry
    spec = str(entry)
    mapping, _, _proto = spec.partition("/")
    container = mapping.rsplit(":", 1)[-1]
    if not container.isdigit() or int(container) not in ports:
        return entry
    host_port, container_port = ports[int(container)]
    return f"{host_port}:{container_port}"


def patch_compose(
    path: Path,
    *,
    image: str | None = None,
    ports: dict[str, PortMap] | None = None,
    dry_run: bool = False,
) -> list[str]:
    """Rewrite WAHA images and published ports in a compose file.

    Args:
        path: The compose file.
        image: Replacement for any ``devlikeapro/waha[-plus]`` image.
        ports: ``{image repository: {upstream container port: (host port,
            container port)}}``. Only services running that image (any
            WAHA flavour counts as ``WAHA_REPO``) are rewritten; matching
            mappings are published on all interfaces.
        dry_run: Compute changes but do not write.

    Returns:
        Human-readable list of changes made.
    """
    ports = ports or {}
    try:
        doc = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise FetchError(f"Cannot read compose file {path}: {e}") from e

    changes: list[str] = []
    for name, service in (doc.get("services") or {}).items():
        if not isinstance(service, dict):
            continue
        current = service.get("image")
        service_ports = ports.get(_service_repo(current), {})
        if image and isinstance(current, str) and _image_repo(current) in WAHA_IMAGE_REPOS:
            if current != image:
                service["image"] = image
                changes.append(f"{name}: image {current} → {image}")
        published = service.get("ports")
        if isinstance(published, list):
            rewritten = [_rewrite_port(p, service_ports) for p in published]
            for old, new in zip(published, rewritten):
                if old != new:
                    changes.append(f"{name}: port {old} → {new}")
            service["ports"] = rewritten

    if not changes:
        logger.info("Compose file %s needs no changes", path.name)
        return changes

    for change in changes:
        logger.info("Compose %s", change)
    if not dry_run:
        atomic_write_text(path, yaml.safe_dump(doc, sort_keys=False, default_flow_style=False))
    return changes
