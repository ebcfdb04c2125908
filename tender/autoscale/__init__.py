"""Autoscale advisor for the concurrency ceiling."""

from __future__ import annotations

from .advisor import AutoscaleAdvisor, AutoscaleEventType, UtilizationSampler
from .config import AutoscaleConfig
from .models import IDLE_SAMPLE, CeilingDecision, ScaleAction, UtilizationSample

__all__ = [
    "IDLE_SAMPLE",
    "AutoscaleAdvisor",
    "AutoscaleConfig",
    "AutoscaleEventType",
    "CeilingDecision",
    "ScaleAction",
    "UtilizationSample",
    "UtilizationSampler",
]
