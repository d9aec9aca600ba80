"""Development server.

Runs a live perch App under uvicorn. uvicorn is an optional dependency
(``pip install perch[server]``) and is imported only when a server is
actually started.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from perch.app import App


def run_dev_server(
    app: App,
    host: str,
    port: int,
    *,
    reload: bool = False,
    log_level: str = "info",
    app_path: str | None = None,
) -> None:
    """Serve *app* on *host*:*port* until interrupted.

    Reload needs an import string, because uvicorn re-imports the app in
    a fresh process on every change. Without *app_path* the live object
    is served and reload is turned off.
    """
    try:
        import uvicorn
    except ImportError as exc:
        msg = "Serving requires uvicorn. Install it with: pip install 'perch[server]'"
        raise RuntimeError(msg) from exc

    target: object = app
    if reload and app_path is not None:
        target = app_path
    else:
        reload = False

    uvicorn.run(
        target,  # type: ignore[arg-type]
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
        lifespan="on",
    )
