"""Editor session: the state machine tying document, workspace and toolchain together.

Everything here runs on one thread.  User actions call the public methods,
workspace/text-buffer callbacks report edits, and :meth:`SessionController.pump`
drains the toolchain events; each handler runs to completion before the next.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from .channel import (
    COMPLETION_STAGE,
    DEFAULT_STAGES,
    Event,
    ExportRequest,
    Job,
    JobState,
    PresenceEvent,
    ProgressEvent,
    RunRequest,
    SaveRequest,
    SaveResult,
    SketchList,
    SketchesQuery,
    StopRequest,
    ToolchainChannel,
    Transition,
)
from .codec import PersistedSketch, decode, encode
from .config import DEFAULT_CATALOG, DeviceCatalog, EditorSettings
from .document import Document, RepresentationKind
from .errors import EmptyWorkspace, UnknownDevice, ValidationError
from .notifications import NotificationCenter
from .ports import PortWatcher
from .workspace import TextBuffer, Workspace, parse_markup

StatusCallback = Callable[[str], None]
DestinationPrompt = Callable[[], Optional[str]]
ExitCallback = Callable[[], None]

SAVE_AND_EXIT = "saveAndExit"
EXIT = "exit"
CANCEL = "cancel"
EXIT_OPTIONS = (SAVE_AND_EXIT, EXIT, CANCEL)


def sanitize_name(name: str) -> str:
    return name.replace(" ", "").replace(".", "")


def validate_filename(name: str, existing: Tuple[str, ...]) -> Optional[str]:
    """Return ``EMPTY``, ``EXISTS`` or ``None`` for a name typed in the save dialog."""

    clean = sanitize_name(name)
    if not name or not clean:
        return ValidationError.EMPTY
    if name in existing or clean in existing:
        return ValidationError.EXISTS
    return None


@dataclass
class SaveModalState:
    open: bool = False
    filename: str = ""
    error: Optional[str] = None
    existing: Tuple[str, ...] = ()
    query_id: Optional[int] = None

    @property
    def can_submit(self) -> bool:
        return self.open and self.error is None


@dataclass
class SessionState:
    editor_open: bool = False
    job: Optional[Job] = None
    unsaved_changes: bool = False
    exit_pending: bool = False
    save_modal: SaveModalState = field(default_factory=SaveModalState)
    device_connected: bool = False
    minimal_compile: bool = True
    code_preview: str = ""
    exited: bool = False
    last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.job is not None and self.job.state is JobState.RUNNING

    @property
    def running_stage(self) -> Optional[str]:
        return self.job.stage if self.running and self.job is not None else None


@dataclass
class PendingSave:
    title: str
    payload: str
    from_modal: bool = False


class SessionController:
    """Owns the open document and mediates every transition around it."""

    def __init__(
        self,
        channel: ToolchainChannel,
        *,
        workspace: Optional[Workspace] = None,
        text_buffer: Optional[TextBuffer] = None,
        catalog: DeviceCatalog = DEFAULT_CATALOG,
        settings: Optional[EditorSettings] = None,
        notifications: Optional[NotificationCenter] = None,
        port_watcher: Optional[PortWatcher] = None,
        destination_prompt: Optional[DestinationPrompt] = None,
        on_exit: Optional[ExitCallback] = None,
        status_cb: Optional[StatusCallback] = None,
        stages: Tuple[str, ...] = DEFAULT_STAGES,
        completion_stage: str = COMPLETION_STAGE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.channel = channel
        self.workspace = workspace
        self.text_buffer = text_buffer
        self.catalog = catalog
        self.settings = settings or EditorSettings()
        self.clock = clock
        self.notifications = notifications or NotificationCenter(
            timeout=self.settings.notification_timeout_s,
            grace=self.settings.notification_grace_s,
            clock=clock,
        )
        self.port_watcher = port_watcher
        self.destination_prompt = destination_prompt or (lambda: None)
        self.on_exit = on_exit or (lambda: None)
        self.status_cb = status_cb or (lambda message: None)
        self.stages = stages
        self.completion_stage = completion_stage

        self.document: Optional[Document] = None
        self.state = SessionState(minimal_compile=self.settings.minimal_compile)
        self._pending_saves: Dict[int, PendingSave] = {}
        self._quiet_until = 0.0

        if workspace is not None:
            workspace.add_change_listener(self.on_workspace_change)
        if text_buffer is not None:
            text_buffer.add_change_listener(self.on_text_change)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def notify(self, message: str, *, error: bool = False, key: Optional[str] = None) -> None:
        self.notifications.add(message, key=key, error=error)
        if error:
            self.state.last_error = message
        self.status_cb(message)

    @property
    def device_name(self) -> str:
        if self.document is None:
            return "Device"
        return self.catalog.display_name(self.document.device_id)

    def _in_grace(self) -> bool:
        return self.clock() < self._quiet_until

    def code(self) -> str:
        """Source code of the current program, as it would be compiled."""

        if self.document is None:
            return ""
        if self.document.kind is RepresentationKind.VISUAL:
            return self.workspace.generate_code() if self.workspace is not None else ""
        if self.text_buffer is not None:
            return self.text_buffer.get_text()
        return self.document.payload

    def _current_payload(self) -> str:
        assert self.document is not None
        if self.document.kind is RepresentationKind.VISUAL and self.workspace is not None:
            return self.workspace.serialize()
        if self.document.kind is RepresentationKind.TEXTUAL and self.text_buffer is not None:
            return self.text_buffer.get_text()
        return self.document.payload

    def _encode(self) -> Optional[PersistedSketch]:
        assert self.document is not None
        try:
            return encode(self.document, self.workspace, self.text_buffer)
        except EmptyWorkspace as exc:
            self.notify(str(exc), error=True)
            return None

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------
    def load(self, sketch: PersistedSketch, *, title: str = "") -> bool:
        try:
            decoded = decode(sketch, self.catalog, title=title)
        except UnknownDevice as exc:
            self.notify(str(exc), error=True)
            return False

        document = decoded.document
        if document.kind is RepresentationKind.VISUAL:
            try:
                parse_markup(document.payload)
            except ValueError as exc:
                self.notify(str(exc), error=True)
                return False
        profile = self.catalog.get(document.device_id)
        previous_device = self.document.device_id if self.document is not None else None

        self.document = document
        self._pending_saves.clear()
        self.state = SessionState(
            editor_open=True,
            job=self.state.job,
            device_connected=self.state.device_connected,
            minimal_compile=self.state.minimal_compile,
        )
        self._quiet_until = self.clock() + self.settings.load_grace_s

        if document.kind is RepresentationKind.VISUAL:
            if self.workspace is None:
                raise RuntimeError("Loading a visual sketch needs a workspace")
            self.workspace.clear()
            self.workspace.deserialize(document.payload)
            if profile is not None:
                self.workspace.set_palette(profile.palette)
            self.state.code_preview = self.workspace.generate_code()
        else:
            if self.text_buffer is not None:
                self.text_buffer.set_text(document.payload)
                mark_clean = getattr(self.text_buffer, "mark_clean", None)
                if mark_clean is not None:
                    mark_clean()
            self.state.code_preview = document.payload

        if self.port_watcher is not None and previous_device != document.device_id:
            self.port_watcher.set_vendor_ids(profile.usb_vendor_ids if profile is not None else ())

        self.status_cb(f"Loaded {document.kind.value} sketch for {self.device_name}")
        if decoded.first_save_warranted and document.untitled:
            self._show_save_modal()
        return True

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------
    def on_workspace_change(self) -> None:
        if self.document is None or self.document.kind is not RepresentationKind.VISUAL:
            return
        assert self.workspace is not None
        self.state.code_preview = self.workspace.generate_code()
        if self._in_grace():
            return
        self.document.payload = self.workspace.serialize()
        self.document.mark_dirty()
        self.state.unsaved_changes = True

    def on_text_change(self) -> None:
        if self.document is None or self.document.kind is not RepresentationKind.TEXTUAL:
            return
        assert self.text_buffer is not None
        text = self.text_buffer.get_text()
        self.state.code_preview = text
        if self._in_grace():
            return
        self.document.payload = text
        self.document.mark_dirty()
        self.state.unsaved_changes = True

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------
    def save(self) -> bool:
        if self.document is None:
            return False
        if self.document.untitled:
            self.notify("Name the sketch before saving it.", error=True)
            return False
        return self._send_save(self.document.title, from_modal=False)

    def save_or_prompt(self) -> bool:
        """Keyboard save: inline save when titled, the save dialog otherwise."""

        if self.document is not None and self.document.untitled:
            return self.open_save_modal()
        return self.save()

    def _send_save(self, title: str, *, from_modal: bool) -> bool:
        assert self.document is not None
        sketch = self._encode()
        if sketch is None:
            return False
        request = SaveRequest(
            title=title,
            data=sketch.to_data(),
            kind=self.document.kind,
            device_id=self.document.device_id,
        )
        self._pending_saves[request.request_id] = PendingSave(title=title, payload=sketch.payload, from_modal=from_modal)
        self.channel.send(request)
        return True

    def open_save_modal(self) -> bool:
        if self.document is None:
            return False
        if (
            self.document.kind is RepresentationKind.VISUAL
            and self.workspace is not None
            and self.workspace.block_count() == 0
        ):
            self.notify(str(EmptyWorkspace()), error=True)
            return False
        self._show_save_modal()
        return True

    def _show_save_modal(self) -> None:
        assert self.document is not None
        modal = self.state.save_modal
        if modal.open:
            return
        query = SketchesQuery(kind=self.document.kind)
        modal.open = True
        modal.filename = ""
        modal.error = ValidationError.EMPTY
        modal.query_id = query.request_id
        self.channel.send(query)

    def change_filename(self, name: str) -> Optional[str]:
        modal = self.state.save_modal
        modal.filename = name
        modal.error = validate_filename(name, modal.existing)
        return modal.error

    def submit_save_modal(self) -> bool:
        modal = self.state.save_modal
        if self.document is None or not modal.can_submit:
            return False
        if any(pending.from_modal for pending in self._pending_saves.values()):
            return False
        return self._send_save(sanitize_name(modal.filename), from_modal=True)

    def close_save_modal(self) -> None:
        self.state.save_modal = SaveModalState()
        self.state.exit_pending = False

    # ------------------------------------------------------------------
    # Toolchain actions
    # ------------------------------------------------------------------
    def run(self) -> bool:
        if self.document is None:
            return False
        job = self.state.job
        if job is not None and job.state is JobState.RUNNING:
            job.request_stop()
            self.channel.send(StopRequest(code=self.code(), minimal=self.state.minimal_compile, job_id=job.request_id))
            self.status_cb("Stopping ...")
            return True
        if job is not None and job.active:
            self.status_cb("Waiting for the toolchain to start the previous job")
            return False

        request = RunRequest(code=self.code(), device_id=self.document.device_id, minimal=self.state.minimal_compile)
        self.state.job = Job(
            request_id=request.request_id,
            action="run",
            stages=self.stages,
            completion_stage=self.completion_stage,
        )
        self.channel.send(request)
        return True

    def export_binary(self, destination: Optional[str] = None) -> bool:
        if self.document is None:
            return False
        if self.state.job is not None and self.state.job.active:
            self.notify("Wait for the current job to finish.", error=True)
            return False
        if destination is None:
            destination = self.destination_prompt()
        if not destination:
            return False

        request = ExportRequest(
            code=self.code(),
            device_id=self.document.device_id,
            destination=str(destination),
            minimal=self.state.minimal_compile,
        )
        job = Job(
            request_id=request.request_id,
            action="export",
            stages=self.stages,
            completion_stage=self.completion_stage,
        )
        job.mark_running()
        self.state.job = job
        self.channel.send(request)
        return True

    def toggle_minimal(self) -> bool:
        self.state.minimal_compile = not self.state.minimal_compile
        return self.state.minimal_compile

    # ------------------------------------------------------------------
    # Exit
    # ------------------------------------------------------------------
    def request_exit(self) -> bool:
        """Home button: leave right away when clean, otherwise ask first."""

        if self.document is None or not self.state.unsaved_changes:
            self._exit()
            return True
        self.state.exit_pending = True
        return False

    def save_and_exit(self, option: str) -> None:
        if option not in EXIT_OPTIONS:
            raise ValueError(f"Unknown exit option: {option!r}")
        if self.document is None or not self.state.unsaved_changes:
            self._exit()
            return

        if option == CANCEL:
            self.state.exit_pending = False
            return
        if option == EXIT:
            self._exit()
            return

        self.state.exit_pending = True
        sent = self.open_save_modal() if self.document.untitled else self.save()
        if not sent:
            self.state.exit_pending = False

    def _exit(self) -> None:
        self.document = None
        self._pending_saves.clear()
        self.state.editor_open = False
        self.state.exited = True
        self.state.exit_pending = False
        self.state.unsaved_changes = False
        self.state.save_modal = SaveModalState()
        self.status_cb("Editor closed")
        self.on_exit()

    # ------------------------------------------------------------------
    # Toolchain events
    # ------------------------------------------------------------------
    def pump(self) -> None:
        if self.port_watcher is not None:
            self.port_watcher.poll()
        for event in self.channel.poll():
            self.handle_event(event)
        self.notifications.tick()

    def handle_event(self, event: Event) -> None:
        if isinstance(event, ProgressEvent):
            self._on_progress(event)
        elif isinstance(event, PresenceEvent):
            self._on_presence(event)
        elif isinstance(event, SaveResult):
            self._on_save_result(event)
        elif isinstance(event, SketchList):
            self._on_sketch_list(event)

    def _on_progress(self, event: ProgressEvent) -> None:
        job = self.state.job
        if job is None or job.request_id != event.request_id:
            return
        transition = job.apply(event)
        if transition in (Transition.STARTED, Transition.STAGE) and job.stage:
            self.status_cb(f"{job.action.capitalize()}: {job.stage}")
        elif transition is Transition.CANCELLED:
            self.notify("Run operation cancelled.")
        elif transition is Transition.COMPLETED:
            if event.error:
                self.notify(f"Toolchain error: {event.error}", error=True)
            elif job.action == "export":
                self.notify("Export finished.")
            else:
                self.notify("Upload finished.")

    def _on_presence(self, event: PresenceEvent) -> None:
        if event.present == self.state.device_connected:
            return
        self.state.device_connected = event.present
        verb = "connected" if event.present else "disconnected"
        self.notify(f"{self.device_name} {verb}", key="presence")

    def _on_save_result(self, event: SaveResult) -> None:
        pending = self._pending_saves.pop(event.request_id, None)
        if pending is None or self.document is None:
            return
        if event.error:
            self.state.exit_pending = False
            self.notify(event.error, error=True)
            return

        unchanged = self._current_payload() == pending.payload
        self.document.mark_clean(pending.title if pending.from_modal else None)
        if unchanged:
            self.state.unsaved_changes = False
            mark_clean = getattr(self.text_buffer, "mark_clean", None)
            if self.document.kind is RepresentationKind.TEXTUAL and mark_clean is not None:
                mark_clean()
        else:
            self.document.mark_dirty()
        if pending.from_modal:
            self.state.save_modal = SaveModalState()
        self.notify("Sketch saved.")

        if self.state.exit_pending:
            self._exit()

    def _on_sketch_list(self, event: SketchList) -> None:
        modal = self.state.save_modal
        if modal.query_id != event.request_id:
            return
        modal.existing = tuple(event.titles)
        if modal.filename:
            modal.error = validate_filename(modal.filename, modal.existing)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def status(self) -> Dict[str, Any]:
        state = self.state
        document = self.document
        modal = state.save_modal
        return {
            "editor_open": state.editor_open,
            "exited": state.exited,
            "document": None
            if document is None
            else {
                "title": document.title,
                "kind": document.kind.value,
                "device": document.device_id,
                "dirty": document.dirty,
            },
            "job": {
                "state": state.job.state.value if state.job else JobState.IDLE.value,
                "action": state.job.action if state.job else None,
                "stage": state.running_stage,
            },
            "unsaved_changes": state.unsaved_changes,
            "exit_pending": state.exit_pending,
            "save_modal": {
                "open": modal.open,
                "filename": modal.filename,
                "error": modal.error,
                "can_submit": modal.can_submit,
            },
            "device_connected": state.device_connected,
            "minimal_compile": state.minimal_compile,
            "code_preview": state.code_preview,
            "last_error": state.last_error,
        }


__all__ = [
    "SessionController",
    "SessionState",
    "SaveModalState",
    "sanitize_name",
    "validate_filename",
    "SAVE_AND_EXIT",
    "EXIT",
    "CANCEL",
]
