"""Application layer: the host-facing command facade."""

from .facade import AutofillFacade, build_facade

__all__ = ["AutofillFacade", "build_facade"]
