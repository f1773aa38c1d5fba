"""Video composition modules."""

from reelgen.render.compositor import CompositionRequest, CompositionResult, MediaCompositor

__all__ = ["CompositionRequest", "CompositionResult", "MediaCompositor"]
