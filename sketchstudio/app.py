"""NiceGUI application hosting the sketch editor session."""

from __future__ import annotations

import threading
import time
from typing import Dict, List, Optional

from nicegui import app, ui

from .config import AppState
from .controller import StudioController
from .document import RepresentationKind
from .errors import SketchbookError
from .session import CANCEL, EXIT, SAVE_AND_EXIT

# ---------------------------------------------------------------------------
# Global state shared between UI and backend
# ---------------------------------------------------------------------------
app_state = AppState()

status_messages: List[str] = []
status_lock = threading.Lock()
_syncing = False


def _append_status(message: str) -> None:
    timestamp = time.strftime("%H:%M:%S")
    with status_lock:
        status_messages.append(f"[{timestamp}] {message}")


controller = StudioController(app_state=app_state, status_cb=_append_status)
session = controller.session

# UI element references (populated in create_ui)
device_select: Optional[ui.select] = None  # type: ignore[assignment]
kind_toggle: Optional[ui.toggle] = None  # type: ignore[assignment]
sketch_select: Optional[ui.select] = None  # type: ignore[assignment]
title_label: Optional[ui.label] = None  # type: ignore[assignment]
connection_label: Optional[ui.label] = None  # type: ignore[assignment]
stage_label: Optional[ui.label] = None  # type: ignore[assignment]
run_button: Optional[ui.button] = None  # type: ignore[assignment]
source_area: Optional[ui.textarea] = None  # type: ignore[assignment]
preview_area: Optional[ui.textarea] = None  # type: ignore[assignment]
status_area: Optional[ui.textarea] = None  # type: ignore[assignment]
notification_column: Optional[ui.column] = None  # type: ignore[assignment]
save_dialog: Optional[ui.dialog] = None  # type: ignore[assignment]
filename_input: Optional[ui.input] = None  # type: ignore[assignment]
filename_error_label: Optional[ui.label] = None  # type: ignore[assignment]
save_submit_button: Optional[ui.button] = None  # type: ignore[assignment]
exit_dialog: Optional[ui.dialog] = None  # type: ignore[assignment]
export_dialog: Optional[ui.dialog] = None  # type: ignore[assignment]
export_input: Optional[ui.input] = None  # type: ignore[assignment]

FILENAME_ERRORS: Dict[str, str] = {
    "EMPTY": "Enter a name for the sketch.",
    "EXISTS": "A sketch with this name already exists.",
}


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------

def _selected_kind() -> RepresentationKind:
    value = kind_toggle.value if kind_toggle is not None else "block"
    return RepresentationKind.parse(value or "block")


def _refresh_sketches() -> None:
    if sketch_select is None:
        return
    sketch_select.options = controller.sketchbook.titles(_selected_kind())
    sketch_select.update()


def _show_document() -> None:
    global _syncing
    document = session.document
    if source_area is None:
        return
    _syncing = True
    try:
        if document is None:
            source_area.value = ""
        elif document.kind is RepresentationKind.VISUAL:
            source_area.value = controller.workspace.serialize()
        else:
            source_area.value = controller.text_buffer.get_text()
    finally:
        _syncing = False


def _new_sketch() -> None:
    device = device_select.value if device_select is not None else app_state.default_device
    if controller.new_sketch(device, _selected_kind()):
        _show_document()


def _open_sketch() -> None:
    if sketch_select is None or not sketch_select.value:
        _append_status("Select a sketch to open.")
        return
    try:
        opened = controller.open_sketch(sketch_select.value, _selected_kind())
    except SketchbookError as exc:
        _append_status(f"Could not open sketch: {exc}")
        return
    if opened:
        _show_document()


def _source_changed(value: str) -> None:
    document = session.document
    if _syncing or document is None:
        return
    if document.kind is RepresentationKind.VISUAL:
        try:
            controller.workspace.replace(value or "")
        except ValueError as exc:
            _append_status(str(exc))
    else:
        controller.text_buffer.set_text(value or "")


def _filename_changed(value: str) -> None:
    if not _syncing:
        session.change_filename(value or "")


def _submit_export() -> None:
    destination = export_input.value if export_input is not None else ""
    if export_dialog is not None:
        export_dialog.close()
    session.export_binary(destination or "")


def _exit_choice(option: str) -> None:
    session.save_and_exit(option)


def _sync_status_to_ui() -> None:
    global _syncing
    session.pump()
    state = session.state
    document = session.document

    if title_label is not None:
        if document is None:
            title_label.text = "No sketch open"
        else:
            marker = " *" if state.unsaved_changes else ""
            title_label.text = f"{document.title or 'Untitled'}{marker} - {session.device_name}"
    if connection_label is not None:
        connection_label.text = "Device connected" if state.device_connected else "Device not connected"
    if stage_label is not None:
        stage_label.text = f"Stage: {state.running_stage}" if state.running_stage else ""
    if run_button is not None:
        run_button.text = "Stop" if state.running else "Run"
    if preview_area is not None:
        preview_area.value = state.code_preview

    modal = state.save_modal
    if save_dialog is not None:
        if modal.open and not save_dialog.value:
            _syncing = True
            try:
                if filename_input is not None:
                    filename_input.value = modal.filename
            finally:
                _syncing = False
            save_dialog.open()
        elif not modal.open and save_dialog.value:
            save_dialog.close()
            _refresh_sketches()
    if filename_error_label is not None:
        filename_error_label.text = FILENAME_ERRORS.get(modal.error or "", "")
    if save_submit_button is not None:
        save_submit_button.set_enabled(modal.can_submit)

    if exit_dialog is not None:
        if state.exit_pending and not modal.open and not exit_dialog.value:
            exit_dialog.open()
        elif not state.exit_pending and exit_dialog.value:
            exit_dialog.close()
    if state.exited and source_area is not None and source_area.value:
        _show_document()

    if notification_column is not None:
        notification_column.clear()
        with notification_column:
            for item in session.notifications.items:
                color = "text-red-600" if item.error else "text-gray-800"
                opacity = " opacity-50" if item.closing else ""
                ui.label(item.message).classes(f"text-sm {color}{opacity}").on(
                    "click", lambda _, nid=item.id: session.notifications.close(nid)
                )

    if status_area is not None:
        with status_lock:
            status_area.value = "\n".join(status_messages[-250:])


# ---------------------------------------------------------------------------
# UI construction
# ---------------------------------------------------------------------------

def create_ui() -> None:
    global device_select, kind_toggle, sketch_select, title_label, connection_label
    global stage_label, run_button, source_area, preview_area, status_area
    global notification_column, save_dialog, filename_input, filename_error_label
    global save_submit_button, exit_dialog, export_dialog, export_input

    ui.page_title("SketchStudio")
    ui.markdown("# SketchStudio")

    with ui.dialog() as save_dialog, ui.card():
        ui.label("Save sketch").classes("text-lg font-semibold")
        filename_input = ui.input(label="Name", on_change=lambda e: _filename_changed(e.value))
        filename_error_label = ui.label("").classes("text-sm text-red-600")
        with ui.row().classes("gap-2"):
            ui.button("Cancel", on_click=session.close_save_modal)
            save_submit_button = ui.button("Save", on_click=session.submit_save_modal)

    with ui.dialog() as exit_dialog, ui.card():
        ui.label("You have unsaved changes.").classes("text-lg font-semibold")
        with ui.row().classes("gap-2"):
            ui.button("Save and exit", on_click=lambda: _exit_choice(SAVE_AND_EXIT))
            ui.button("Exit", on_click=lambda: _exit_choice(EXIT))
            ui.button("Cancel", on_click=lambda: _exit_choice(CANCEL))

    with ui.dialog() as export_dialog, ui.card():
        ui.label("Export binary").classes("text-lg font-semibold")
        export_input = ui.input(label="Destination directory")
        with ui.row().classes("gap-2"):
            ui.button("Cancel", on_click=export_dialog.close)
            ui.button("Export", on_click=_submit_export)

    with ui.row().classes("w-full gap-6"):
        with ui.column().classes("w-1/3 gap-4"):
            # Sketch selection
            with ui.card().classes("w-full"):
                ui.label("Sketches").classes("text-lg font-semibold")
                device_select = ui.select(
                    options={profile.id: profile.name for profile in app_state.catalog},
                    value=app_state.default_device,
                    label="Device",
                )
                kind_toggle = ui.toggle({"block": "Blocks", "code": "Code"}, value="block",
                                        on_change=lambda e: _refresh_sketches())
                ui.button("New sketch", on_click=_new_sketch)
                sketch_select = ui.select(options=[], label="Saved sketches")
                with ui.row().classes("gap-2"):
                    ui.button("Refresh", on_click=_refresh_sketches)
                    ui.button("Open", on_click=_open_sketch)
                connection_label = ui.label("Device not connected").classes("text-sm text-gray-500")

            # Notifications
            with ui.card().classes("w-full"):
                ui.label("Notifications").classes("text-lg font-semibold")
                notification_column = ui.column().classes("gap-1")

            # Status log
            with ui.card().classes("w-full"):
                ui.label("Status log").classes("text-lg font-semibold")
                status_area = ui.textarea(value="", auto_resize=True)
                status_area.props("readonly")

        with ui.column().classes("w-2/3 gap-4"):
            with ui.card().classes("w-full"):
                title_label = ui.label("No sketch open").classes("text-lg font-semibold")
                with ui.row().classes("gap-2 items-center"):
                    ui.button("Home", on_click=session.request_exit)
                    ui.button("Save", on_click=session.save_or_prompt)
                    run_button = ui.button("Run", on_click=session.run)
                    ui.button("Export", on_click=export_dialog.open)
                    ui.switch("Minimal compile", value=session.state.minimal_compile,
                              on_change=lambda e: session.toggle_minimal())
                    stage_label = ui.label("").classes("text-sm text-gray-500")
                source_area = ui.textarea(label="Sketch", on_change=lambda e: _source_changed(e.value)).classes("w-full")

            with ui.card().classes("w-full"):
                ui.label("Code preview").classes("text-lg font-semibold")
                preview_area = ui.textarea(value="").classes("w-full")
                preview_area.props("readonly")

    ui.timer(app_state.editor.poll_interval_s, _sync_status_to_ui)
    _refresh_sketches()


@app.get("/api/status")
def api_status() -> Dict:
    return session.status()


app.on_shutdown(controller.close)


def run(**kwargs) -> None:
    ui.run(**kwargs)


@ui.page("/")
def index() -> None:
    create_ui()
