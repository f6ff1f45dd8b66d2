import threading
from pathlib import Path

import pytest

from sketchstudio.channel import (
    ExportRequest,
    ProgressEvent,
    RunRequest,
    SaveRequest,
    SaveResult,
    SketchList,
    SketchesQuery,
    StopRequest,
)
from sketchstudio.config import ToolchainSettings
from sketchstudio.document import RepresentationKind
from sketchstudio.sketchbook import Sketchbook
from sketchstudio.toolchain import CliToolchain

RINGO = "cm:esp32:ringo"


@pytest.fixture()
def toolchain(tmp_path):
    settings = ToolchainSettings(sketchbook_dir=tmp_path / "book", build_dir=tmp_path / "build")
    port = {"value": "/dev/ttyUSB0"}
    channel = CliToolchain(settings, Sketchbook(settings.sketchbook_dir), port_provider=lambda: port["value"])
    channel.calls = []
    channel.port = port
    return channel


def finish(channel):
    channel._thread.join(timeout=5)
    assert not channel.is_running
    return channel.poll()


def succeed(channel):
    def execute(argv):
        channel.calls.append(argv)
        return 0, "ok\n"

    channel._execute = execute


def test_run_compiles_then_uploads(toolchain):
    written = []

    def execute(argv):
        toolchain.calls.append(argv)
        if argv[1] == "compile":
            written.append((Path(argv[-1]) / "sketch.ino").read_text())
        return 0, "ok\n"

    toolchain._execute = execute
    request = RunRequest(code="void loop() {}", device_id=RINGO, minimal=False)
    toolchain.send(request)
    events = finish(toolchain)

    assert events == [
        ProgressEvent(request.request_id, "COMPILE", running=True),
        ProgressEvent(request.request_id, "UPLOAD", running=True),
        ProgressEvent(request.request_id, "DONE"),
    ]
    compile_args, upload_args = toolchain.calls
    assert compile_args[:4] == ["arduino-cli", "compile", "--fqbn", RINGO]
    assert "--clean" in compile_args
    assert upload_args[:4] == ["arduino-cli", "upload", "-p", "/dev/ttyUSB0"]

    assert written == ["void loop() {}"]
    assert not (toolchain._build_root / f"sketch-{request.request_id}").exists()


def test_run_without_device_fails_at_upload(toolchain):
    succeed(toolchain)
    toolchain.port["value"] = None
    request = RunRequest(code="", device_id=RINGO)
    toolchain.send(request)
    events = finish(toolchain)

    assert events[-1] == ProgressEvent(request.request_id, "DONE", error="Device is not connected")
    assert len(toolchain.calls) == 1
    assert "--clean" not in toolchain.calls[0]


def test_compile_failure_reports_last_line(toolchain):
    toolchain._execute = lambda argv: (1, "warning: x\nerror: 'foo' was not declared\n")
    request = RunRequest(code="foo();", device_id=RINGO)
    toolchain.send(request)
    events = finish(toolchain)

    assert [event.stage for event in events] == ["COMPILE", "DONE"]
    assert events[-1].error == "error: 'foo' was not declared"


def test_missing_cli_is_reported(toolchain):
    def execute(argv):
        raise FileNotFoundError("arduino-cli")

    toolchain._execute = execute
    request = RunRequest(code="", device_id=RINGO)
    toolchain.send(request)
    events = finish(toolchain)

    assert events[-1].stage == "DONE"
    assert events[-1].error.startswith("Toolchain unavailable")


def test_export_writes_to_destination(toolchain, tmp_path):
    succeed(toolchain)
    request = ExportRequest(code="", device_id=RINGO, destination=str(tmp_path / "out"))
    toolchain.send(request)
    events = finish(toolchain)

    assert [event.stage for event in events] == ["COMPILE", "EXPORT", "DONE"]
    assert events[-1].error is None
    args = toolchain.calls[0]
    assert args[args.index("--output-dir") + 1] == str(tmp_path / "out")


def test_stop_cancels_running_job(toolchain):
    started = threading.Event()
    release = threading.Event()

    def execute(argv):
        started.set()
        release.wait(5)
        return -15, ""

    toolchain._execute = execute
    request = RunRequest(code="", device_id=RINGO)
    toolchain.send(request)
    assert started.wait(5)

    toolchain.send(StopRequest(code="", job_id=request.request_id))
    release.set()
    events = finish(toolchain)

    assert events[-1] == ProgressEvent(request.request_id, "DONE", cancelled=True)


def test_second_job_is_refused_while_busy(toolchain):
    started = threading.Event()
    release = threading.Event()

    def execute(argv):
        started.set()
        release.wait(5)
        return 0, ""

    toolchain._execute = execute
    first = RunRequest(code="", device_id=RINGO)
    toolchain.send(first)
    assert started.wait(5)

    second = RunRequest(code="", device_id=RINGO)
    toolchain.send(second)
    release.set()
    events = finish(toolchain)

    assert ProgressEvent(second.request_id, "DONE", error="A job is already running") in events
    assert events[-1] == ProgressEvent(first.request_id, "DONE")


def test_save_and_list_use_sketchbook(toolchain):
    save = SaveRequest(title="Tone", data="void loop() {}", kind=RepresentationKind.TEXTUAL, device_id=RINGO)
    toolchain.send(save)
    query = SketchesQuery(kind=RepresentationKind.TEXTUAL)
    toolchain.send(query)

    assert toolchain.poll() == [SaveResult(save.request_id), SketchList(query.request_id, ("Tone",))]


def test_save_error_is_reported(toolchain):
    save = SaveRequest(title="../x", data="", kind=RepresentationKind.TEXTUAL, device_id=RINGO)
    toolchain.send(save)

    (result,) = toolchain.poll()
    assert result.request_id == save.request_id
    assert result.error


def test_next_run_starts_as_soon_as_completion_is_seen(toolchain):
    succeed(toolchain)
    first = RunRequest(code="", device_id=RINGO)
    toolchain.send(first)
    while True:
        event = toolchain._events.get(timeout=5)
        if event.stage == "DONE":
            break

    second = RunRequest(code="", device_id=RINGO)
    toolchain.send(second)
    events = finish(toolchain)

    assert events[-1] == ProgressEvent(second.request_id, "DONE")
    assert all(event.error is None for event in events)


def test_refused_job_leaves_no_build_directory(toolchain):
    started = threading.Event()
    release = threading.Event()

    def execute(argv):
        started.set()
        release.wait(5)
        return 0, ""

    toolchain._execute = execute
    toolchain.send(RunRequest(code="", device_id=RINGO))
    assert started.wait(5)
    second = RunRequest(code="", device_id=RINGO)
    toolchain.send(second)
    release.set()
    finish(toolchain)

    assert list(toolchain._build_root.iterdir()) == []


def test_close_removes_temporary_build_root(tmp_path):
    channel = CliToolchain(ToolchainSettings(sketchbook_dir=tmp_path), Sketchbook(tmp_path))
    build_root = channel._build_root
    assert build_root.is_dir()

    channel.close()
    assert not build_root.exists()


def test_close_keeps_configured_build_dir(toolchain):
    toolchain._build_root.mkdir(parents=True, exist_ok=True)
    toolchain.close()
    assert toolchain._build_root.is_dir()
