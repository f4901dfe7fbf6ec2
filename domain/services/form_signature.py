from __future__ import annotations

import hashlib

from domain.models import DetectedForm


def form_signature(form: DetectedForm, path: str) -> str:
    """Stable id of a rendered form instance: its questions plus the page path."""
    pairs = sorted((f.label, f.type.value) for f in form.fields)
    material = "|".join(f"{label}:{field_type}" for label, field_type in pairs)
    digest = hashlib.sha256(f"{material}@{path}".encode("utf-8")).hexdigest()
    return digest[:16]


__all__ = ["form_signature"]
