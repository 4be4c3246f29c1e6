#!/usr/bin/env python3
"""Start the depsync report API."""

import os

import uvicorn


def main() -> None:
    host = os.environ.get("DEPSYNC_HOST", "127.0.0.1")
    port = int(os.environ.get("DEPSYNC_PORT", "8000"))
    print(f"depsync report API on http://{host}:{port}")
    print(f"API docs: http://{host}:{port}/docs")
    print()

    uvicorn.run(
        "apps.web.main:app",
        host=host,
        port=port,
        reload=bool(os.environ.get("DEPSYNC_RELOAD")),
        reload_dirs=["apps", "core"],
    )


if __name__ == "__main__":
    main()
