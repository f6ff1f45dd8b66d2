"""Entrypoint for launching the SketchStudio FastAPI server."""
from __future__ import annotations

import uvicorn


def main() -> None:
    uvicorn.run("sketchstudio.server.app:create_app", factory=True, host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
