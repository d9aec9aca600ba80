"""Users — a small JSON service built from route and module directories.

Layout::

    routes/route.py             GET /          (+ not-found for everything)
    routes/users/route.py       GET, POST /users
    routes/users/[id]/route.py  GET, DELETE /users/{id}
    injectable/store.py         "store"  -> in-memory UserStore
    injectable/audit.py         "audit"  -> list of audit lines

Demonstrates validated query and body input, response shaping (the
stored password hash never leaves the service), path parameter coercion,
and injected modules shared across routes.

Run:
    cd examples/users && python app.py
"""

from pathlib import Path

from perch import App, AppConfig

HERE = Path(__file__).parent

app = App(
    AppConfig(
        routes_dir=HERE / "routes",
        modules_dir=HERE / "injectable",
        eager_modules=True,
    )
)
app.mount_routes()


async def served_by(request, next):
    response = await next(request)
    return response.with_header("X-Served-By", "perch-users")


app.add_middleware(served_by)


if __name__ == "__main__":
    app.run()
