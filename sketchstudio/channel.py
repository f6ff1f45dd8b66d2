"""Request/event protocol spoken with the external build toolchain.

Requests are fire-and-forget.  Whatever the toolchain reports comes back as
events on a single queue which the session drains on its own thread with
:meth:`ToolchainChannel.poll`; events carry the ``request_id`` of the request
they answer so one subscription can route all of them.
"""
from __future__ import annotations

import enum
import itertools
import queue
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .document import RepresentationKind

_request_ids = itertools.count(1)


def _next_request_id() -> int:
    return next(_request_ids)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunRequest:
    code: str
    device_id: str
    minimal: bool = True
    request_id: int = field(default_factory=_next_request_id)


@dataclass(frozen=True)
class StopRequest:
    code: str
    minimal: bool = True
    job_id: Optional[int] = None
    request_id: int = field(default_factory=_next_request_id)


@dataclass(frozen=True)
class ExportRequest:
    code: str
    device_id: str
    destination: str
    minimal: bool = True
    request_id: int = field(default_factory=_next_request_id)


@dataclass(frozen=True)
class SaveRequest:
    title: str
    data: str
    kind: RepresentationKind
    device_id: str
    request_id: int = field(default_factory=_next_request_id)


@dataclass(frozen=True)
class SketchesQuery:
    kind: RepresentationKind
    request_id: int = field(default_factory=_next_request_id)


Request = Union[RunRequest, StopRequest, ExportRequest, SaveRequest, SketchesQuery]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProgressEvent:
    request_id: int
    stage: str
    running: bool = False
    cancelled: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class PresenceEvent:
    present: bool
    port: Optional[str] = None


@dataclass(frozen=True)
class SaveResult:
    request_id: int
    error: Optional[str] = None


@dataclass(frozen=True)
class SketchList:
    request_id: int
    titles: Tuple[str, ...] = ()


Event = Union[ProgressEvent, PresenceEvent, SaveResult, SketchList]


# ---------------------------------------------------------------------------
# Job state machine
# ---------------------------------------------------------------------------

DEFAULT_STAGES: Tuple[str, ...] = ("COMPILE", "UPLOAD", "EXPORT", "DONE")
COMPLETION_STAGE = "DONE"


class JobState(enum.Enum):
    IDLE = "idle"
    REQUESTED = "requested"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Transition(enum.Enum):
    STARTED = "started"
    STAGE = "stage"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    IGNORED = "ignored"


TERMINAL_STATES = (JobState.COMPLETED, JobState.CANCELLED)


@dataclass
class Job:
    """One run or export tracked through its progress events.

    The toolchain acknowledges a job with its first ``running`` event and
    finishes it with the completion stage reported while no longer running.
    Repeated, late or out-of-order notifications are dropped.
    """

    request_id: int
    action: str = "run"
    stages: Sequence[str] = DEFAULT_STAGES
    completion_stage: str = COMPLETION_STAGE
    state: JobState = JobState.REQUESTED
    stage: Optional[str] = None
    stop_requested: bool = False

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def active(self) -> bool:
        return self.state in (JobState.REQUESTED, JobState.RUNNING)

    def mark_running(self) -> None:
        if self.state is JobState.REQUESTED:
            self.state = JobState.RUNNING

    def request_stop(self) -> None:
        if self.active:
            self.stop_requested = True

    def _stage_index(self, stage: Optional[str]) -> int:
        if stage is None:
            return -1
        try:
            return list(self.stages).index(stage)
        except ValueError:
            return -2

    def apply(self, event: ProgressEvent) -> Transition:
        if self.finished or self.state is JobState.IDLE:
            return Transition.IGNORED

        if event.stage == self.completion_stage and not event.running:
            self.stage = event.stage
            if self.stop_requested and event.cancelled:
                self.state = JobState.CANCELLED
                return Transition.CANCELLED
            self.state = JobState.COMPLETED
            return Transition.COMPLETED

        if self.state is JobState.REQUESTED:
            if not event.running:
                return Transition.IGNORED
            self.state = JobState.RUNNING
            if event.stage != self.completion_stage and self._stage_index(event.stage) >= 0:
                self.stage = event.stage
            return Transition.STARTED

        index = self._stage_index(event.stage)
        if event.stage == self.completion_stage or index < 0 or index <= self._stage_index(self.stage):
            return Transition.IGNORED
        self.stage = event.stage
        return Transition.STAGE


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


class ToolchainChannel:
    """Base class for toolchain backends.

    Subclasses implement the ``_handle_*`` hooks and report back with
    :meth:`post`, from any thread.
    """

    def __init__(self) -> None:
        self._events: "queue.Queue[Event]" = queue.Queue()

    def send(self, request: Request) -> None:
        if isinstance(request, RunRequest):
            self._handle_run(request)
        elif isinstance(request, StopRequest):
            self._handle_stop(request)
        elif isinstance(request, ExportRequest):
            self._handle_export(request)
        elif isinstance(request, SaveRequest):
            self._handle_save(request)
        elif isinstance(request, SketchesQuery):
            self._handle_sketches(request)
        else:
            raise TypeError(f"Unsupported request: {request!r}")

    def post(self, event: Event) -> None:
        self._events.put(event)

    def poll(self) -> List[Event]:
        events: List[Event] = []
        while True:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        pass

    # hooks ---------------------------------------------------------------
    def _handle_run(self, request: RunRequest) -> None:
        raise NotImplementedError

    def _handle_stop(self, request: StopRequest) -> None:
        raise NotImplementedError

    def _handle_export(self, request: ExportRequest) -> None:
        raise NotImplementedError

    def _handle_save(self, request: SaveRequest) -> None:
        raise NotImplementedError

    def _handle_sketches(self, request: SketchesQuery) -> None:
        raise NotImplementedError


class MemoryToolchain(ToolchainChannel):
    """In-memory toolchain used for development and unit tests.

    Every request is recorded in :attr:`sent`.  Saves and sketch queries are
    answered immediately; progress is only produced when ``simulate`` is set,
    otherwise callers drive it with :meth:`emit`.
    """

    def __init__(
        self,
        *,
        simulate: bool = False,
        stages: Sequence[str] = DEFAULT_STAGES,
        completion_stage: str = COMPLETION_STAGE,
    ) -> None:
        super().__init__()
        self.simulate = simulate
        self.stages = tuple(stages)
        self.completion_stage = completion_stage
        self.sent: List[Request] = []
        self.saved: Dict[Tuple[RepresentationKind, str], SaveRequest] = {}
        self.titles: Dict[RepresentationKind, List[str]] = {kind: [] for kind in RepresentationKind}
        self.save_error: Optional[str] = None
        self.auto_reply = True

    def send(self, request: Request) -> None:
        self.sent.append(request)
        super().send(request)

    def sent_of(self, request_type: type) -> List[Request]:
        return [request for request in self.sent if isinstance(request, request_type)]

    def emit(self, event: Event) -> None:
        self.post(event)

    # ------------------------------------------------------------------
    def _simulate_job(self, request_id: int, stages: Sequence[str]) -> None:
        for stage in stages:
            self.post(ProgressEvent(request_id, stage, running=True))
        self.post(ProgressEvent(request_id, self.completion_stage))

    def _handle_run(self, request: RunRequest) -> None:
        if self.simulate:
            self._simulate_job(request.request_id, [s for s in self.stages if s in ("COMPILE", "UPLOAD")])

    def _handle_stop(self, request: StopRequest) -> None:
        if self.simulate and request.job_id is not None:
            self.post(ProgressEvent(request.job_id, self.completion_stage, cancelled=True))

    def _handle_export(self, request: ExportRequest) -> None:
        if self.simulate:
            self._simulate_job(request.request_id, [s for s in self.stages if s in ("COMPILE", "EXPORT")])

    def _handle_save(self, request: SaveRequest) -> None:
        if not self.auto_reply:
            return
        if self.save_error:
            self.post(SaveResult(request.request_id, error=self.save_error))
            return
        self.saved[(request.kind, request.title)] = request
        if request.title not in self.titles[request.kind]:
            self.titles[request.kind].append(request.title)
        self.post(SaveResult(request.request_id))

    def _handle_sketches(self, request: SketchesQuery) -> None:
        if self.auto_reply:
            self.post(SketchList(request.request_id, tuple(self.titles[request.kind])))


__all__ = [
    "RunRequest",
    "StopRequest",
    "ExportRequest",
    "SaveRequest",
    "SketchesQuery",
    "Request",
    "ProgressEvent",
    "PresenceEvent",
    "SaveResult",
    "SketchList",
    "Event",
    "DEFAULT_STAGES",
    "COMPLETION_STAGE",
    "JobState",
    "Transition",
    "Job",
    "ToolchainChannel",
    "MemoryToolchain",
]
