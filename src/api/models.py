# src/api/models.py — v1
"""API-level models returned by the interactive lookup path."""

from __future__ import annotations

from pydantic import BaseModel, Field

from toppbridge.core.models import Peak, SpectrumDescriptor


class FragmentAnnotation(BaseModel):
    """One ``(mz,intensity,"label")`` entry of a fragment annotation string."""

    mz: float
    intensity: float = 0.0
    label: str


class SpectrumView(BaseModel):
    """Everything a viewer needs to draw one annotated spectrum."""

    title: str
    spectrum: SpectrumDescriptor
    peaks: list[Peak] = Field(default_factory=list)
    annotations: str = ""
    # One label per peak (empty when unannotated).
    peak_labels: list[str] = Field(default_factory=list)
    result_set_guid: str


class SpectrumLookupResult(BaseModel):
    """Outcome of show_spectrum(): a view, or a user-facing message."""

    view: SpectrumView | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.view is not None
