"""Variable reference rewriting and runtime template rendering.

Authored text references variables as ``var-contact.<field>`` or
``var-<variableId>``. The compiler rewrites them into ``{{contact.<field>}}``
and ``{{custom.<key>}}`` tokens; ``render`` substitutes those tokens at
execution time.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

from flowcore.authoring.models import WorkflowVariable

_VAR_REF_RE = re.compile(r"\bvar-[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)?\b")
_CONTACT_REF_RE = re.compile(r"^var-contact\.([A-Za-z0-9_-]+)$")
_TOKEN_RE = re.compile(r"\{\{\s*([A-Za-z0-9_.-]+)\s*\}\}")
_KEY_STRIP_RE = re.compile(r"[^a-z0-9]+")


def _custom_key(name: str) -> str:
    key = _KEY_STRIP_RE.sub("_", name.strip().lower()).strip("_")
    return key or "variable"


def build_custom_variable_keys(variables: Iterable[WorkflowVariable]) -> Dict[str, str]:
    """Map custom variable id -> friendly token key.

    Names are slugged; repeated slugs get ``_2``, ``_3`` ... suffixes in
    declaration order.
    """
    keys: Dict[str, str] = {}
    counts: Dict[str, int] = {}
    for variable in variables:
        if not variable.is_custom:
            continue
        base = _custom_key(variable.name)
        counts[base] = counts.get(base, 0) + 1
        keys[variable.id] = base if counts[base] == 1 else f"{base}_{counts[base]}"
    return keys


class VariableRewriter:
    """Rewrites authored variable references for one definition."""

    def __init__(self, variables: Iterable[WorkflowVariable] = ()) -> None:
        self._custom_keys = build_custom_variable_keys(variables)

    def _resolve(self, ref: str) -> Optional[str]:
        match = _CONTACT_REF_RE.match(ref)
        if match:
            return f"contact.{match.group(1)}"
        # Variable ids are stored either bare ("abc") or prefixed ("var-abc")
        key = self._custom_keys.get(ref[len("var-"):]) or self._custom_keys.get(ref)
        if key:
            return f"custom.{key}"
        return None

    def find_unsupported(self, value: Optional[str]) -> List[str]:
        if not value:
            return []
        return [ref for ref in _VAR_REF_RE.findall(value) if self._resolve(ref) is None]

    def rewrite(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None

        def _sub(match: "re.Match[str]") -> str:
            path = self._resolve(match.group(0))
            return "{{" + path + "}}" if path else match.group(0)

        return _VAR_REF_RE.sub(_sub, value)


def normalize_branch_field_ref(ref: Optional[str]) -> Optional[str]:
    """Branch fields must be a ``{{...}}`` token or a ``var-contact.<field>`` ref."""
    if not ref:
        return None
    if ref.startswith("{{") and ref.endswith("}}"):
        return ref
    match = _CONTACT_REF_RE.match(ref)
    if match:
        return "{{contact." + match.group(1) + "}}"
    return None


# ---------------------------------------------------------------------------
# Runtime rendering
# ---------------------------------------------------------------------------


def render(template: Optional[str], variables: Dict[str, Any]) -> str:
    """Substitute ``{{path}}`` tokens from a flat ``{"contact.email": ...}`` map.

    Unknown paths render as empty strings.
    """
    if not template:
        return ""

    def _sub(match: "re.Match[str]") -> str:
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    return _TOKEN_RE.sub(_sub, template)
