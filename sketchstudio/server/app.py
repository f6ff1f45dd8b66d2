"""FastAPI application exposing the editor session over HTTP."""
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from ..controller import StudioController
from ..document import RepresentationKind
from ..errors import SketchbookError, UnknownDevice


def create_controller() -> StudioController:
    return StudioController()


def _kind(value: Any) -> RepresentationKind:
    try:
        return RepresentationKind.parse(value)
    except (ValueError, IndexError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def create_app(controller: Optional[StudioController] = None) -> FastAPI:
    controller = controller or create_controller()
    session = controller.session
    lock = threading.Lock()

    app = FastAPI(title="SketchStudio Editor Server")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.controller = controller

    def pumped() -> None:
        session.pump()

    def rejected(status_code: int = 400) -> HTTPException:
        return HTTPException(status_code=status_code, detail=session.state.last_error or "Request rejected")

    @app.get("/api/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/status")
    def status() -> Dict[str, Any]:
        with lock:
            pumped()
            return session.status()

    @app.get("/api/sketches")
    def sketches() -> Dict[str, List[str]]:
        return controller.sketches()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    @app.post("/api/sketch/new")
    def new_sketch(payload: Dict[str, Any]) -> Dict[str, Any]:
        kind = _kind(payload.get("kind", "block"))
        with lock:
            if not controller.new_sketch(str(payload.get("device", "")), kind):
                raise rejected(404)
            pumped()
            return session.status()

    @app.post("/api/sketch/load")
    def load_sketch(payload: Dict[str, Any]) -> Dict[str, Any]:
        kind = _kind(payload.get("kind", "block"))
        with lock:
            try:
                if "data" in payload:
                    ok = controller.import_sketch(
                        str(payload["data"]),
                        kind,
                        device_id=payload.get("device"),
                        title=str(payload.get("title", "")),
                    )
                else:
                    ok = controller.open_sketch(str(payload.get("title", "")), kind)
            except (SketchbookError, UnknownDevice) as exc:
                raise HTTPException(status_code=404, detail=str(exc)) from exc
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            if not ok:
                raise rejected(404)
            pumped()
            return session.status()

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    @app.put("/api/workspace")
    def edit_workspace(payload: Dict[str, Any]) -> Dict[str, Any]:
        with lock:
            try:
                controller.workspace.replace(str(payload.get("markup", "")))
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            return {"ok": True, "blocks": controller.workspace.block_count(), "code": session.state.code_preview}

    @app.put("/api/code")
    def edit_code(payload: Dict[str, Any]) -> Dict[str, Any]:
        with lock:
            controller.text_buffer.set_text(str(payload.get("text", "")))
            return {"ok": True}

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------
    @app.post("/api/sketch/save")
    def save() -> Dict[str, Any]:
        with lock:
            if not session.save():
                raise rejected()
            pumped()
            return session.status()

    @app.post("/api/sketch/save-as")
    def open_save_as() -> Dict[str, Any]:
        with lock:
            if not session.open_save_modal():
                raise rejected()
            pumped()
            return session.status()["save_modal"]

    @app.post("/api/sketch/save-as/filename")
    def save_as_filename(payload: Dict[str, Any]) -> Dict[str, Any]:
        with lock:
            pumped()
            session.change_filename(str(payload.get("filename", "")))
            return session.status()["save_modal"]

    @app.post("/api/sketch/save-as/submit")
    def save_as_submit() -> Dict[str, Any]:
        with lock:
            if not session.submit_save_modal():
                raise rejected()
            pumped()
            return session.status()

    @app.post("/api/sketch/save-as/close")
    def save_as_close() -> Dict[str, Any]:
        with lock:
            session.close_save_modal()
            return session.status()["save_modal"]

    # ------------------------------------------------------------------
    # Toolchain
    # ------------------------------------------------------------------
    @app.post("/api/job/run")
    def run() -> Dict[str, Any]:
        with lock:
            if not session.run():
                raise HTTPException(status_code=409, detail="A job is already starting")
            pumped()
            return session.status()["job"]

    @app.post("/api/job/export")
    def export(payload: Dict[str, Any]) -> Dict[str, Any]:
        destination = payload.get("destination")
        if not destination:
            return {"ok": False}
        with lock:
            if not session.export_binary(str(destination)):
                raise rejected(409)
            pumped()
            return session.status()["job"]

    @app.post("/api/job/minimal")
    def toggle_minimal() -> Dict[str, Any]:
        with lock:
            return {"minimal_compile": session.toggle_minimal()}

    # ------------------------------------------------------------------
    # Exit and notifications
    # ------------------------------------------------------------------
    @app.post("/api/exit")
    def exit_editor(payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        option = (payload or {}).get("option")
        with lock:
            if option is None:
                session.request_exit()
            else:
                try:
                    session.save_and_exit(str(option))
                except ValueError as exc:
                    raise HTTPException(status_code=400, detail=str(exc)) from exc
            pumped()
            return session.status()

    @app.get("/api/notifications")
    def notifications() -> List[Dict[str, Any]]:
        with lock:
            pumped()
            return [
                {"id": item.id, "message": item.message, "closing": item.closing, "error": item.error}
                for item in session.notifications.items
            ]

    @app.post("/api/notifications/{notification_id}/close")
    def close_notification(notification_id: str) -> Dict[str, Any]:
        with lock:
            session.notifications.close(notification_id)
            return {"ok": True}

    return app


__all__ = ["create_app", "create_controller"]
