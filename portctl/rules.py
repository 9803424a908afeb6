from __future__ import annotations
from dataclasses import dataclass
import json
import logging
import re
from typing import List, Optional

import yaml

from .models import Proc
from .utils.path import to_abs_path

log = logging.getLogger(__name__)


@dataclass
class ProtectRule:
    match_name: str | None = None
    match_cmd: str | None = None
    match_pid: int | None = None
    reason: str | None = None

    def describe(self) -> str:
        if self.match_pid is not None:
            return f"match_pid={self.match_pid}"
        if self.match_name:
            return f"match_name={self.match_name}"
        return f"match_cmd={self.match_cmd}"


def _pattern_match(pattern: str, hay: str, substring: bool) -> bool:
    # '/re/' and '/re/i' are regexes, anything else is literal
    if pattern.startswith('/') and pattern.endswith(('/i', '/I')) and len(pattern) > 3:
        return re.search(pattern[1:-2], hay, flags=re.IGNORECASE) is not None
    if pattern.startswith('/') and pattern.endswith('/') and len(pattern) > 2:
        return re.search(pattern[1:-1], hay) is not None
    if substring:
        return pattern.lower() in hay.lower()
    return pattern == hay


def rule_matches(rule: ProtectRule, proc: Proc) -> bool:
    if rule.match_pid is not None and rule.match_pid == proc.pid:
        return True
    if rule.match_name and _pattern_match(rule.match_name, proc.name or '', substring=False):
        return True
    if rule.match_cmd:
        hay = f"{proc.cmd or ''} {proc.name or ''}"
        if _pattern_match(rule.match_cmd, hay, substring=True):
            return True
    return False


def first_match(rules: List[ProtectRule], proc: Proc) -> Optional[ProtectRule]:
    for r in rules:
        if rule_matches(r, proc):
            return r
    return None


def load_rules(path: Optional[str]) -> List[ProtectRule]:
    """Read protection rules from a YAML (.yaml/.yml) or JSON list."""
    if not path:
        return []
    p = to_abs_path(path)
    if not p:
        return []
    if not p.exists():
        log.warning("rules not found: %s", p)
        return []
    txt = p.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(txt) if p.suffix in (".yaml", ".yml") else json.loads(txt)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"{p}: cannot parse rules: {e}") from e
    if data is not None and not isinstance(data, list):
        raise ValueError(f"{p}: expected a list of rules, got {type(data).__name__}")
    rules = []
    for i, r in enumerate(data or []):
        if not isinstance(r, dict):
            raise ValueError(f"{p}: rule #{i + 1} must be a mapping, got {type(r).__name__}")
        try:
            rules.append(ProtectRule(**r))
        except TypeError as e:
            raise ValueError(f"{p}: rule #{i + 1}: {e}") from e
    log.debug("loaded %d protection rules from %s", len(rules), p)
    return rules
