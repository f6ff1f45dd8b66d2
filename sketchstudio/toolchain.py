"""Toolchain backend that drives ``arduino-cli`` from a worker thread."""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from .channel import (
    ExportRequest,
    ProgressEvent,
    RunRequest,
    SaveRequest,
    SketchesQuery,
    SketchList,
    SaveResult,
    StopRequest,
    ToolchainChannel,
)
from .config import ToolchainSettings
from .errors import SketchbookError, ToolchainError
from .sketchbook import Sketchbook

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]
PortProvider = Callable[[], Optional[str]]
Step = Tuple[str, List[str]]

SKETCH_NAME = "sketch"


class CliToolchain(ToolchainChannel):
    """Runs compile/upload/export jobs one at a time in a background thread."""

    def __init__(
        self,
        settings: ToolchainSettings,
        sketchbook: Sketchbook,
        *,
        port_provider: Optional[PortProvider] = None,
        status_cb: Optional[StatusCallback] = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.sketchbook = sketchbook
        self.port_provider = port_provider or (lambda: None)
        self.status_cb = status_cb or (lambda message: None)

        self._job_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._busy = False
        self._stop_event = threading.Event()
        self._process: Optional[subprocess.Popen] = None
        self._owns_build_root = not settings.build_dir
        self._build_root = Path(settings.build_dir) if settings.build_dir else Path(tempfile.mkdtemp(prefix="sketchstudio-"))

    # ------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        return self._busy

    def _job_dir(self, request_id: int) -> Path:
        return self._build_root / f"{SKETCH_NAME}-{request_id}"

    def _write_sketch(self, request_id: int, code: str) -> Path:
        sketch_dir = self._job_dir(request_id) / SKETCH_NAME
        sketch_dir.mkdir(parents=True, exist_ok=True)
        (sketch_dir / f"{SKETCH_NAME}.ino").write_text(code, encoding="utf-8")
        return sketch_dir

    def _compile_args(self, device_id: str, minimal: bool) -> List[str]:
        args = [self.settings.cli_path, "compile", "--fqbn", device_id]
        if not minimal:
            args.append("--clean")
        return args

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def _handle_run(self, request: RunRequest) -> None:
        sketch_dir = self._write_sketch(request.request_id, request.code)
        compile_args = self._compile_args(request.device_id, request.minimal) + [str(sketch_dir)]
        port = self.port_provider()
        steps: List[Step] = [("COMPILE", compile_args)]
        if port:
            steps.append(
                ("UPLOAD", [self.settings.cli_path, "upload", "-p", port, "--fqbn", request.device_id, str(sketch_dir)])
            )
        else:
            steps.append(("UPLOAD", []))
        self._start(request.request_id, steps)

    def _handle_export(self, request: ExportRequest) -> None:
        sketch_dir = self._write_sketch(request.request_id, request.code)
        compile_args = self._compile_args(request.device_id, request.minimal)
        compile_args += ["--output-dir", request.destination, str(sketch_dir)]
        self._start(request.request_id, [("COMPILE", compile_args), ("EXPORT", [])])

    def _handle_stop(self, request: StopRequest) -> None:
        if not self.is_running:
            return
        self._stop_event.set()
        process = self._process
        if process is not None and process.poll() is None:
            process.terminate()
        self.status_cb("Job stopping ...")

    def _handle_save(self, request: SaveRequest) -> None:
        try:
            self.sketchbook.save(request.title, request.data, request.kind, request.device_id)
        except SketchbookError as exc:
            self.post(SaveResult(request.request_id, error=str(exc)))
            return
        self.post(SaveResult(request.request_id))

    def _handle_sketches(self, request: SketchesQuery) -> None:
        self.post(SketchList(request.request_id, tuple(self.sketchbook.titles(request.kind))))

    def close(self) -> None:
        if self.is_running:
            self._stop_event.set()
            if self._process is not None and self._process.poll() is None:
                self._process.terminate()
        if self._owns_build_root:
            shutil.rmtree(self._build_root, ignore_errors=True)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _start(self, request_id: int, steps: Sequence[Step]) -> None:
        with self._job_lock:
            if self.is_running:
                shutil.rmtree(self._job_dir(request_id), ignore_errors=True)
                self.status_cb("A job is already running")
                self.post(ProgressEvent(request_id, self.settings.completion_stage, error="A job is already running"))
                return
            self._stop_event.clear()
            self._busy = True
            self._thread = threading.Thread(target=self._run_job, args=(request_id, list(steps)), daemon=True)
            self._thread.start()
            self.status_cb("Job started")

    def _run_job(self, request_id: int, steps: List[Step]) -> None:
        error: Optional[str] = None
        try:
            for stage, argv in steps:
                if self._stop_event.is_set():
                    break
                self.post(ProgressEvent(request_id, stage, running=True))
                if stage == "UPLOAD" and not argv:
                    error = "Device is not connected"
                    break
                if not argv:
                    continue
                returncode, output = self._execute(argv)
                if self._stop_event.is_set():
                    break
                if returncode != 0:
                    lines = output.strip().splitlines()
                    raise ToolchainError(lines[-1] if lines else f"{stage} failed ({returncode})")
        except ToolchainError as exc:
            error = str(exc)
        except OSError as exc:
            error = f"Toolchain unavailable: {exc}"
        finally:
            shutil.rmtree(self._job_dir(request_id), ignore_errors=True)
            with self._job_lock:
                cancelled = self._stop_event.is_set()
                self._stop_event.clear()
                self._process = None
                self._busy = False
            if error:
                logger.warning("Job %s failed: %s", request_id, error)
                self.status_cb(f"Toolchain error: {error}")
            self.status_cb("Job stopped" if cancelled else "Job finished")
            self.post(ProgressEvent(request_id, self.settings.completion_stage, cancelled=cancelled, error=error))

    def _execute(self, argv: List[str]) -> Tuple[int, str]:
        logger.info("Running %s", " ".join(argv))
        process = subprocess.Popen(
            argv,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
        self._process = process
        output, _ = process.communicate()
        return process.returncode, output or ""
