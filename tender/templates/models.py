"""Typed task template structures."""

from __future__ import annotations

import msgspec

from tender.events.models import EventKind


class TaskTemplate(msgspec.Struct, kw_only=True, frozen=True):
    """Static description of one unit of on-demand work.

    Attributes
    ----------
    name : str
        Key routes refer to.
    template_reference : str
        Backend-side identifier of the task definition to run.
    cpu_units : int
        CPU reservation in backend units (1024 = one vCPU).
    memory_mib : int
        Memory reservation in MiB.
    environment : dict[str, str]
        Environment bindings passed to the task.
    identity_to_assume : str
        Execution identity the task runs as.

    """

    name: str
    template_reference: str
    identity_to_assume: str
    cpu_units: int = 256
    memory_mib: int = 512
    environment: dict[str, str] = msgspec.field(default_factory=dict)


class TemplateRoute(msgspec.Struct, kw_only=True, frozen=True):
    """Match rule from canonical events to a template."""

    template: str
    event_kind: EventKind = EventKind.CREATED
    resource_prefix: str = ""


class TemplateCatalogue(msgspec.Struct, kw_only=True, frozen=True):
    """Templates and the ordered routes that select them."""

    templates: list[TaskTemplate] = msgspec.field(default_factory=list)
    routes: list[TemplateRoute] = msgspec.field(default_factory=list)
