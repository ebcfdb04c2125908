"""Load template catalogues and route canonical events to templates."""

from __future__ import annotations

import typing as typ
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .models import TaskTemplate, TemplateCatalogue

if typ.TYPE_CHECKING:
    from tender.events.models import CanonicalEvent

YAML_VERSION = (1, 2)

# Per-task reservation bounds
_MIN_CPU_UNITS = 128
_MAX_CPU_UNITS = 16384
_MIN_MEMORY_MIB = 128
_MAX_MEMORY_MIB = 122880


class TemplateValidationError(ValueError):
    """Raised when a template catalogue fails validation."""

    def __init__(self, issues: list[str]) -> None:
        """Keep every issue while presenting one aggregated message."""
        super().__init__("\n".join(issues))
        self.issues = issues


def _template_issues(index: int, template: TaskTemplate) -> list[str]:
    where = f"templates[{index}]"
    issues: list[str] = []
    if not template.template_reference.strip():
        issues.append(f"{where}: template_reference must not be blank")
    if not template.identity_to_assume.strip():
        issues.append(f"{where}: identity_to_assume must not be blank")
    if not _MIN_CPU_UNITS <= template.cpu_units <= _MAX_CPU_UNITS:
        issues.append(
            f"{where}: cpu_units {template.cpu_units} outside "
            f"{_MIN_CPU_UNITS}-{_MAX_CPU_UNITS}"
        )
    if not _MIN_MEMORY_MIB <= template.memory_mib <= _MAX_MEMORY_MIB:
        issues.append(
            f"{where}: memory_mib {template.memory_mib} outside "
            f"{_MIN_MEMORY_MIB}-{_MAX_MEMORY_MIB}"
        )
    return issues


def validate_catalogue(catalogue: TemplateCatalogue) -> TemplateCatalogue:
    """Check template bounds and route references."""
    issues: list[str] = []
    names: set[str] = set()
    for index, template in enumerate(catalogue.templates):
        if template.name in names:
            issues.append(f"templates[{index}]: duplicate name {template.name!r}")
        names.add(template.name)
        issues.extend(_template_issues(index, template))

    issues.extend(
        f"routes[{index}]: unknown template {route.template!r}"
        for index, route in enumerate(catalogue.routes)
        if route.template not in names
    )

    if issues:
        raise TemplateValidationError(issues)
    return catalogue


def load_template_catalogue(path: Path | str) -> TemplateCatalogue:
    """Parse and validate a YAML template catalogue."""
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    try:
        loaded = yaml.load(Path(path).read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        raise TemplateValidationError([f"failed to parse YAML: {exc}"]) from exc

    if loaded is None:
        raise TemplateValidationError(["template catalogue is empty"])

    try:
        catalogue = msgspec.convert(loaded, type=TemplateCatalogue)
    except msgspec.ValidationError as exc:
        raise TemplateValidationError([f"schema validation failed: {exc}"]) from exc

    return validate_catalogue(catalogue)


class TemplateRouter:
    """Select the template for a canonical event; first matching route wins."""

    def __init__(self, catalogue: TemplateCatalogue) -> None:
        """Index templates by name after validating the catalogue."""
        self._catalogue = validate_catalogue(catalogue)
        self._by_name = {t.name: t for t in catalogue.templates}

    def get(self, name: str) -> TaskTemplate | None:
        """Return the template called ``name``, if any."""
        return self._by_name.get(name)

    def route(self, event: CanonicalEvent) -> TaskTemplate | None:
        """Return the template for ``event`` or ``None`` when nothing matches."""
        for route in self._catalogue.routes:
            if route.event_kind != event.event_kind:
                continue
            if event.resource_id.startswith(route.resource_prefix):
                return self._by_name[route.template]
        return None
