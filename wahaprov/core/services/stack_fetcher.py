"""
Stack fetcher — download deployment artifacts into the target directory.

DESTRUCTIVE REFRESH: when the target directory already exists, its
whole contents are deleted and replaced by the freshly fetched
artifacts. Anything else kept there (local edits, data volumes
bind-mounted from it) is lost. A warning is logged and recorded.

Artifacts are first downloaded into a staging directory beside the
target and verified there. Only when every required artifact is good
is the old directory removed and the staging directory renamed into
place; a failed fetch leaves the previous target untouched.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from wahaprov.core.errors import FetchError
from wahaprov.core.models.spec import Artifact
from wahaprov.core.services.network import DownloadError, http_get
from wahaprov.core.services.templating import ConfigDocument

logger = logging.getLogger(__name__)

REPLACE_WARNING = "Directory {path} already exists; replacing its contents"


@dataclass
class FetchReport:
    """What ``fetch`` did."""

    target_dir: Path
    fetched: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    replaced: bool = False


# ── Verification ────────────────────────────────────────────────


def _verify_compose(name: str, data: bytes) -> None:
    try:
        doc = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise FetchError(f"{name} is not valid YAML: {e}") from e
    if not isinstance(doc, dict) or not isinstance(doc.get("services"), dict):
        raise FetchError(f"{name} has no 'services' mapping; not a compose file")


def _verify_env(name: str, data: bytes) -> None:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FetchError(f"{name} is not UTF-8 text") from e
    bad = [
        line.raw for line in ConfigDocument.parse(text).lines if line.kind == "other"
    ]
    if bad:
        raise FetchError(f"{name} has {len(bad)} malformed line(s), first: {bad[0]!r}")


def verify_artifact(name: str, data: bytes) -> None:
    """Basic shape check for a downloaded artifact.

    Raises:
        FetchError: empty, or not the format its name implies.
    """
    if not data.strip():
        raise FetchError(f"{name} is empty")
    if name.endswith((".yml", ".yaml")):
        _verify_compose(name, data)
    elif name.startswith(".env") or name.endswith(".env"):
        _verify_env(name, data)


# ── Fetch ───────────────────────────────────────────────────────


def fetch(
    target_dir: Path,
    artifacts: Iterable[Artifact],
    *,
    downloader: Callable[[str], bytes] = http_get,
    dry_run: bool = False,
) -> FetchReport:
    """Replace ``target_dir`` with freshly downloaded ``artifacts``.

    Raises:
        FetchError: a required artifact failed to download or verify.
    """
    artifacts = list(artifacts)
    report = FetchReport(target_dir=target_dir)

    if target_dir.exists():
        report.replaced = True
        report.warnings.append(REPLACE_WARNING.format(path=target_dir))
        logger.warning(report.warnings[-1])

    if dry_run:
        report.fetched = [a.name for a in artifacts]
        logger.info("[dry-run] would fetch %d artifacts into %s", len(artifacts), target_dir)
        return report

    target_dir.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(dir=target_dir.parent, prefix=f".{target_dir.name}.fetch-"))
    try:
        for artifact in artifacts:
            try:
                data = downloader(artifact.url)
            except DownloadError as e:
                if artifact.optional and e.status == 404:
                    report.skipped.append(artifact.name)
                    logger.warning("Optional artifact %s not found; skipping", artifact.name)
                    continue
                raise FetchError(f"Failed to fetch {artifact.name}: {e}") from e
            verify_artifact(artifact.name, data)
            (staging / artifact.name).write_bytes(data)
            report.fetched.append(artifact.name)
            logger.info("Fetched %s (%d bytes)", artifact.name, len(data))

        if target_dir.exists():
            shutil.rmtree(target_dir)
        staging.rename(target_dir)
        target_dir.chmod(0o755)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    return report


def seed_env_file(
    target_dir: Path,
    example: str,
    dest: str,
    fallback: Iterable[str],
    *,
    dry_run: bool = False,
) -> bool:
    """Create ``dest`` from ``example``, or from ``fallback`` lines if absent.

    Returns True when the example was used.
    """
    source = target_dir / example
    out = target_dir / dest
    if source.is_file():
        if not dry_run:
            shutil.copyfile(source, out)
        logger.info("Created %s from %s", dest, example)
        return True

    logger.warning("%s not found; creating a basic %s", example, dest)
    if not dry_run:
        out.write_text("".join(f"{line}\n" for line in fallback), encoding="utf-8")
    return False
