"""Task templates and event-to-template routing."""

from __future__ import annotations

from .models import TaskTemplate, TemplateCatalogue, TemplateRoute
from .router import (
    TemplateRouter,
    TemplateValidationError,
    load_template_catalogue,
    validate_catalogue,
)

__all__ = [
    "TaskTemplate",
    "TemplateCatalogue",
    "TemplateRoute",
    "TemplateRouter",
    "TemplateValidationError",
    "load_template_catalogue",
    "validate_catalogue",
]
