"""Entry point for running the NiceGUI sketch editor."""

from sketchstudio.app import run


if __name__ in {"__main__", "__mp_main__"}:
    run(reload=False, host="0.0.0.0", port=8080)
