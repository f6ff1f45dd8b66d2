"""Top-level package for the SketchStudio editor.

This package exposes the editor session that keeps block and text sketches in
sync with their saved form, the sketch codec, and the channel used to drive the
external build toolchain.
"""

from .document import Document, RepresentationKind
from .codec import PersistedSketch, decode, encode
from .channel import Job, JobState, MemoryToolchain
from .session import SessionController
from .controller import StudioController

__all__ = [
    "Document",
    "RepresentationKind",
    "PersistedSketch",
    "decode",
    "encode",
    "Job",
    "JobState",
    "MemoryToolchain",
    "SessionController",
    "StudioController",
]
