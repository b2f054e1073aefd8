"""
Config template engine — declarative edits to KEY=VALUE documents.

A document is parsed into line records, transformed by an ordered list
of rules, and written back atomically. Rules run strictly in the order
given; each sees the document as left by the rules before it.

Rules:
    SetValue(key, value)               replace the value of an active key
    InsertAfter(anchor, key, value)    add ``key=value`` below ``anchor``
    CommentOut(pattern)                ``# `` in front of matching active lines
    UncommentSet(pattern, value)       revive a commented ``KEY=`` line
    AppendIfAbsent(key, value)         append unless the key is active

A rule that finds nothing to act on is a no-op, unless built with
``require_match=True``, in which case it raises
``TemplateKeyNotFoundError``. Re-applying a rule list to its own output
gives the same text: InsertAfter and UncommentSet update an existing
active key instead of adding a second one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Literal

from wahaprov.core.errors import TemplateKeyNotFoundError
from wahaprov.core.persistence.atomic import atomic_write_text

logger = logging.getLogger(__name__)

LineKind = Literal["blank", "comment", "entry", "other"]

_ENTRY_RE = re.compile(r"^\s*(?P<key>[A-Za-z_][A-Za-z0-9_]*)=(?P<value>.*)$")
_COMMENTED_RE = re.compile(r"^\s*#+\s*(?P<key>[A-Za-z_][A-Za-z0-9_]*)=(?P<value>.*)$")

COMMENT_MARKER = "# "


# ── Line records ────────────────────────────────────────────────


@dataclass(frozen=True)
class ConfigLine:
    """One line of a config document.

    ``key``/``value`` are set for active entries; ``commented_key`` for
    comments that hold ``KEY=VALUE`` text.
    """

    kind: LineKind
    raw: str
    key: str | None = None
    value: str | None = None
    commented_key: str | None = None

    @classmethod
    def parse(cls, raw: str) -> ConfigLine:
        stripped = raw.strip()
        if not stripped:
            return cls(kind="blank", raw=raw)
        if stripped.startswith("#"):
            m = _COMMENTED_RE.match(raw)
            return cls(kind="comment", raw=raw, commented_key=m.group("key") if m else None)
        m = _ENTRY_RE.match(raw)
        if m:
            return cls(kind="entry", raw=raw, key=m.group("key"), value=m.group("value"))
        return cls(kind="other", raw=raw)

    @classmethod
    def entry(cls, key: str, value: str) -> ConfigLine:
        return cls(kind="entry", raw=f"{key}={value}", key=key, value=value)

    @property
    def active(self) -> bool:
        return self.kind == "entry"

    def with_value(self, value: str) -> ConfigLine:
        if self.value == value:
            return self
        assert self.key is not None
        return ConfigLine.entry(self.key, value)

    def commented(self) -> ConfigLine:
        return ConfigLine.parse(f"{COMMENT_MARKER}{self.raw}")


@dataclass(frozen=True)
class ConfigDocument:
    """An ordered, immutable sequence of line records."""

    lines: tuple[ConfigLine, ...] = ()
    trailing_newline: bool = True

    @classmethod
    def parse(cls, text: str) -> ConfigDocument:
        if not text:
            return cls()
        trailing = text.endswith("\n")
        body = text[:-1] if trailing else text
        return cls(
            lines=tuple(ConfigLine.parse(raw) for raw in body.split("\n")),
            trailing_newline=trailing,
        )

    def render(self) -> str:
        if not self.lines:
            return ""
        text = "\n".join(line.raw for line in self.lines)
        return text + "\n" if self.trailing_newline else text

    def get(self, key: str) -> str | None:
        """Value of the first active ``key`` line, or None."""
        for line in self.lines:
            if line.active and line.key == key:
                return line.value
        return None

    def active_keys(self) -> list[str]:
        return [line.key for line in self.lines if line.active and line.key]


# ── Rules ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Rule:
    """Base rule. ``apply`` edits ``lines`` in place and reports a match."""

    require_match: bool = field(default=False, kw_only=True)

    def apply(self, lines: list[ConfigLine]) -> bool:
        raise NotImplementedError


def _set_active(lines: list[ConfigLine], key_pattern: str, value: str) -> bool:
    matched = False
    for i, line in enumerate(lines):
        if line.active and fnmatchcase(line.key or "", key_pattern):
            lines[i] = line.with_value(value)
            matched = True
    return matched


@dataclass(frozen=True)
class SetValue(Rule):
    key: str
    value: str = field(repr=False)

    def apply(self, lines: list[ConfigLine]) -> bool:
        return _set_active(lines, self.key, self.value)


@dataclass(frozen=True)
class InsertAfter(Rule):
    anchor_key: str
    key: str
    value: str = field(repr=False)

    def apply(self, lines: list[ConfigLine]) -> bool:
        if _set_active(lines, self.key, self.value):
            return True
        for i, line in enumerate(lines):
            if line.active and line.key == self.anchor_key:
                lines.insert(i + 1, ConfigLine.entry(self.key, self.value))
                return True
        return False


@dataclass(frozen=True)
class CommentOut(Rule):
    key_pattern: str

    def apply(self, lines: list[ConfigLine]) -> bool:
        matched = False
        for i, line in enumerate(lines):
            if line.active and fnmatchcase(line.key or "", self.key_pattern):
                lines[i] = line.commented()
                matched = True
        return matched


@dataclass(frozen=True)
class UncommentSet(Rule):
    key_pattern: str
    value: str = field(repr=False)

    def apply(self, lines: list[ConfigLine]) -> bool:
        if _set_active(lines, self.key_pattern, self.value):
            return True
        for i, line in enumerate(lines):
            if line.commented_key and fnmatchcase(line.commented_key, self.key_pattern):
                lines[i] = ConfigLine.entry(line.commented_key, self.value)
                return True
        return False


@dataclass(frozen=True)
class AppendIfAbsent(Rule):
    """Always succeeds: appending is its own fallback, so strict mode never fires."""

    key: str
    value: str = field(repr=False)

    def apply(self, lines: list[ConfigLine]) -> bool:
        if not any(line.active and line.key == self.key for line in lines):
            lines.append(ConfigLine.entry(self.key, self.value))
        return True


def set_or_append(key: str, value: str) -> list[Rule]:
    """Set ``key`` wherever it lives: active, commented, or nowhere yet."""
    return [UncommentSet(key, value), AppendIfAbsent(key, value)]


# ── Application ─────────────────────────────────────────────────


def _apply(doc: ConfigDocument, rules: list[Rule]) -> tuple[ConfigDocument, list[Rule]]:
    lines = list(doc.lines)
    unmatched: list[Rule] = []
    for rule in rules:
        if rule.apply(lines):
            continue
        if rule.require_match:
            raise TemplateKeyNotFoundError(rule)
        logger.debug("Rule matched nothing (no-op): %s", rule)
        unmatched.append(rule)
    return replace(doc, lines=tuple(lines)), unmatched


def apply_rules(doc: ConfigDocument, rules: list[Rule]) -> ConfigDocument:
    """Pure transform: the document after every rule, in order."""
    return _apply(doc, rules)[0]


@dataclass
class TemplateResult:
    """What ``template_file`` did."""

    path: Path
    changed: bool
    unmatched: list[Rule] = field(default_factory=list)


def template_file(
    source: Path,
    rules: list[Rule],
    dest: Path | None = None,
    *,
    dry_run: bool = False,
) -> TemplateResult:
    """Template ``source`` into ``dest`` (default: in place), atomically.

    Args:
        source: Existing KEY=VALUE file.
        rules: Ordered rules.
        dest: Output path; ``source`` when None.
        dry_run: Compute the result but do not write.

    Raises:
        TemplateKeyNotFoundError: A strict rule matched nothing. The
            destination is left untouched.
    """
    dest = dest or source
    original = source.read_text(encoding="utf-8")
    doc, unmatched = _apply(ConfigDocument.parse(original), rules)
    rendered = doc.render()

    current = dest.read_text(encoding="utf-8") if dest.exists() else None
    changed = rendered != current
    if changed and not dry_run:
        atomic_write_text(dest, rendered)

    logger.info(
        "Templated %s: %d rules, %d no-op%s",
        dest.name,
        len(rules),
        len(unmatched),
        "" if changed else " (unchanged)",
    )
    return TemplateResult(path=dest, changed=changed, unmatched=unmatched)
