"""Tests for perch.app — mounting, freezing, lifespan, and the request pipeline."""

from pathlib import Path
from typing import Any

import pytest

from perch.app import App
from perch.config import AppConfig
from perch.contract import RouteContract
from perch.dispatch import Reply, ValidatedRequest
from perch.errors import ConfigurationError, HTTPError, NotFound
from perch.http.request import Request
from perch.http.response import Response
from perch.injection import Injected, ModuleRegistry
from perch.testing import TestClient


def _users_contract() -> RouteContract:
    users = RouteContract()

    @users.get
    def index():
        return {"users": ["al", "bo"]}

    @users.post_validated(
        body={
            "name": {"type": "string", "required": True, "min": 2},
            "email": {"type": "email", "required": True},
        },
        responses={
            201: {
                "id": {"type": "number", "required": True},
                "name": {"type": "string", "required": True},
                "email": {"type": "email", "required": True},
            }
        },
    )
    def create(data: ValidatedRequest, reply: Reply):
        reply.status = 201
        return {"id": 1, **data.body, "password_hash": "x"}

    @users.get_with_params(["id"], params={"id": {"type": "number", "required": True}})
    def show(data: ValidatedRequest):
        if data.params["id"] > 10:
            raise NotFound("No such user")
        return {"id": data.params["id"]}

    return users


class TestAppRegistration:
    def test_mount_rejects_other_types(self) -> None:
        app = App()
        with pytest.raises(TypeError, match="Cannot mount dict"):
            app.mount("/x", {})  # type: ignore[arg-type]

    def test_modules_and_registry_exclusive(self) -> None:
        with pytest.raises(ConfigurationError, match="not both"):
            App(modules={}, registry=ModuleRegistry())

    def test_shared_registry(self) -> None:
        registry = ModuleRegistry()
        assert App(registry=registry).registry is registry

    def test_provide(self) -> None:
        app = App()
        app.provide("clock", lambda: "tick")
        assert "clock" in app.registry

    def test_middleware_must_be_callable(self) -> None:
        with pytest.raises(TypeError, match="Middleware must be callable"):
            App().add_middleware("cors")  # type: ignore[arg-type]

    def test_mount_routes_needs_directory(self) -> None:
        with pytest.raises(ConfigurationError, match="routes_dir"):
            App().mount_routes()

    def test_frozen_app_rejects_changes(self) -> None:
        app = App()
        app._ensure_frozen()
        with pytest.raises(RuntimeError, match="Cannot modify the app"):
            app.contract("/late")
        with pytest.raises(RuntimeError, match="Cannot modify the app"):
            app.provide("late", dict)

        async def mw(request, next):
            return await next(request)

        with pytest.raises(RuntimeError, match="Cannot modify the app"):
            app.add_middleware(mw)


class TestFreezing:
    def test_conflicting_mounts(self) -> None:
        app = App()
        app.contract("/users").get(lambda: {})
        app.contract("/users/").get(lambda: {})
        with pytest.raises(ConfigurationError, match="Route conflict"):
            app._ensure_frozen()

    def test_repeated_parameter(self) -> None:
        app = App()
        app.contract("/orgs/{id}").get_with_params(["id"], lambda: {})
        with pytest.raises(ConfigurationError, match="Path parameter repeated"):
            app._ensure_frozen()

    def test_invalid_schema_fails_at_freeze(self) -> None:
        app = App()
        app.contract("/users").get_validated(lambda: {}, query={"age": {"type": "uuid"}})
        with pytest.raises(ConfigurationError, match="unknown type"):
            app._ensure_frozen()

    def test_describe_routes(self) -> None:
        app = App()
        app.mount("/users", _users_contract())
        described = app.describe_routes()
        assert [(d["method"], d["path"], d["style"]) for d in described] == [
            ("GET", "/users", "plain"),
            ("GET", "/users/{id}", "validated_with_params"),
            ("POST", "/users", "validated"),
        ]


class TestRequests:
    async def test_plain_get(self) -> None:
        app = App()
        app.mount("/users", _users_contract())
        async with TestClient(app) as client:
            response = await client.get("/users")
        assert response.status == 200
        assert response.content_type == "application/json"
        assert response.json == {"users": ["al", "bo"]}

    async def test_validated_post_is_shaped(self) -> None:
        app = App()
        app.mount("/users", _users_contract())
        async with TestClient(app) as client:
            response = await client.post("/users", json={"name": "Al", "email": "al@example.com"})
        assert response.status == 201
        assert response.json == {
            "success": True,
            "status": 201,
            "data": {"id": 1, "name": "Al", "email": "al@example.com"},
        }

    async def test_validation_failure(self) -> None:
        app = App()
        app.mount("/users", _users_contract())
        async with TestClient(app) as client:
            response = await client.post("/users", json={"name": "A"})
        assert response.status == 400
        body = response.json
        assert body["success"] is False
        assert body["error"] == "Validation failed"
        assert {e["field"] for e in body["errors"]} == {"name", "email"}

    async def test_malformed_json(self) -> None:
        app = App()
        app.mount("/users", _users_contract())
        async with TestClient(app) as client:
            response = await client.post(
                "/users", body=b"{not json", headers={"content-type": "application/json"}
            )
        assert response.status == 400
        assert response.json == {"success": False, "error": "Malformed request body"}

    async def test_path_params_coerced(self) -> None:
        app = App()
        app.mount("/users", _users_contract())
        async with TestClient(app) as client:
            ok = await client.get("/users/7")
            bad = await client.get("/users/seven")
            missing = await client.get("/users/11")
        assert ok.json["data"] == {"id": 7}
        assert bad.status == 400
        assert bad.json["errors"][0]["source"] == "params"
        assert missing.status == 404
        assert missing.json == {"success": False, "error": "No such user"}

    async def test_generic_not_found(self) -> None:
        app = App()
        app.mount("/users", _users_contract())
        async with TestClient(app) as client:
            response = await client.get("/posts")
        assert response.status == 404
        assert response.json == {"success": False, "error": "Not Found"}

    async def test_method_not_allowed(self) -> None:
        app = App()
        app.mount("/users", _users_contract())
        async with TestClient(app) as client:
            response = await client.delete("/users")
        assert response.status == 405
        assert ("allow", "GET, POST") in response.headers

    async def test_not_found_handler_answers_under_mount(self) -> None:
        app = App()
        api = app.contract("/api")
        api.get(lambda: {"root": True})

        @api.not_found
        def fallback(request: Request):
            return {"message": f"Nothing at {request.method} {request.path}"}

        async with TestClient(app) as client:
            root = await client.get("/api")
            deep = await client.get("/api/missing/thing")
            wrong_method = await client.post("/api")
            outside = await client.get("/elsewhere")
        assert root.json == {"root": True}
        assert deep.status == 404
        assert deep.json == {"message": "Nothing at GET /api/missing/thing"}
        assert wrong_method.status == 404
        assert outside.json == {"success": False, "error": "Not Found"}

    async def test_handler_error_is_json_500(self) -> None:
        app = App()

        def boom():
            raise RuntimeError("kaput")

        app.contract("/boom").get(boom)
        async with TestClient(app) as client:
            response = await client.get("/boom")
        assert response.status == 500
        assert response.json == {"success": False, "error": "Internal Server Error"}

    async def test_unsafe_error_reaches_base_class_handler(self) -> None:
        app = App()

        def boom():
            raise KeyError("raw")

        app.contract("/boom").get_unsafe(boom)

        @app.error(LookupError)
        def lookup_failed(request: Request, exc: Exception):
            return {"handled": str(exc)}

        async with TestClient(app) as client:
            response = await client.get("/boom")
        assert response.status == 500
        assert response.json == {"handled": "'raw'"}

    async def test_status_error_handler(self) -> None:
        app = App()
        app.contract("/users").get(lambda: {})

        @app.error(404)
        def not_found():
            return Response("gone").with_status(404)

        async with TestClient(app) as client:
            response = await client.get("/nope")
        assert response.status == 404
        assert response.text == "gone"

    async def test_request_too_large(self) -> None:
        app = App(AppConfig(max_content_length=8))
        app.contract("/echo").post(lambda: {})
        async with TestClient(app) as client:
            response = await client.post("/echo", json={"much": "too long"})
        assert response.status == 413

    async def test_modules_injected(self) -> None:
        app = App(modules={"greeter": lambda: (lambda name: f"hi {name}")})

        @app.contract("/greet/{name}").get
        async def greet(name: str, modules: Injected):
            greeter = await modules.resolve("greeter")
            return {"message": greeter(name)}

        async with TestClient(app) as client:
            response = await client.get("/greet/al")
        assert response.json == {"message": "hi al"}


class TestMiddleware:
    async def test_first_registered_runs_outermost(self) -> None:
        app = App()
        app.contract("/").get(lambda: {})
        order: list[str] = []

        def tagging(tag: str):
            async def middleware(request: Request, next) -> Response:
                order.append(f"{tag}:in")
                response = await next(request)
                order.append(f"{tag}:out")
                return response.with_header("X-Tag", tag)

            return middleware

        app.add_middleware(tagging("outer"))
        app.add_middleware(tagging("inner"))
        async with TestClient(app) as client:
            response = await client.get("/")
        assert order == ["outer:in", "inner:in", "inner:out", "outer:out"]
        assert [v for k, v in response.headers if k == "x-tag"] == ["inner", "outer"]

    async def test_middleware_short_circuit(self) -> None:
        app = App()
        app.contract("/").get(lambda: {})

        async def deny(request: Request, next) -> Response:
            raise HTTPError(status=401, detail="Unauthorized")

        app.add_middleware(deny)
        async with TestClient(app) as client:
            response = await client.get("/")
        assert response.status == 401
        assert response.json == {"success": False, "error": "Unauthorized"}

    async def test_route_middleware_scoped_to_its_route(self) -> None:
        app = App()
        seen: list[str] = []

        async def app_wide(request: Request, next) -> Response:
            seen.append(f"app {request.path}")
            return await next(request)

        async def admin_only(request: Request, next) -> Response:
            seen.append(f"admin {request.path} {request.path_params}")
            if request.headers.get("x-token") != "secret":
                raise HTTPError(status=403, detail="Forbidden")
            return (await next(request)).with_header("X-Admin", "1")

        app.add_middleware(app_wide)
        admin = app.contract("/admin").use(admin_only)
        admin.get(lambda: {"admin": True})
        admin.delete_with_params(["id"], lambda data: None)
        app.contract("/public").get(lambda: {"public": True})

        async with TestClient(app) as client:
            public = await client.get("/public")
            denied = await client.get("/admin")
            allowed = await client.get("/admin", headers={"x-token": "secret"})
            removed = await client.delete("/admin/4", headers={"x-token": "secret"})

        assert public.json == {"public": True}
        assert ("x-admin", "1") not in public.headers
        assert denied.status == 403
        assert allowed.json == {"admin": True}
        assert ("x-admin", "1") in allowed.headers
        assert removed.status == 200
        assert seen == [
            "app /public",
            "app /admin",
            "admin /admin {}",
            "app /admin",
            "admin /admin {}",
            "app /admin/4",
            "admin /admin/4 {'id': '4'}",
        ]

    async def test_route_middleware_wraps_not_found(self) -> None:
        app = App()
        calls: list[str] = []

        async def counting(request: Request, next) -> Response:
            calls.append(request.path)
            return await next(request)

        api = app.contract("/api").use(counting)
        api.not_found(lambda request: {"missing": request.path})
        app.contract("/").get(lambda: {})

        async with TestClient(app) as client:
            await client.get("/")
            response = await client.get("/api/nope")
        assert response.status == 404
        assert calls == ["/api/nope"]

    async def test_route_middleware_from_directories(self, tmp_path: Path) -> None:
        routes = tmp_path / "routes"
        (routes / "admin" / "users").mkdir(parents=True)
        (routes / "admin" / "middleware.py").write_text(
            "async def middleware(request, next):\n"
            "    return (await next(request)).with_header('X-Area', 'admin')\n"
        )
        for directory in (routes, routes / "admin" / "users"):
            (directory / "route.py").write_text(
                "from perch import RouteContract\n"
                "route = RouteContract()\n"
                "route.get(lambda: {})\n"
            )

        app = App(AppConfig(routes_dir=routes))
        app.mount_routes()
        async with TestClient(app) as client:
            root = await client.get("/")
            users = await client.get("/admin/users")
        assert ("x-area", "admin") not in root.headers
        assert ("x-area", "admin") in users.headers


class TestDiscovery:
    async def test_modules_dir(self, tmp_path: Path) -> None:
        modules = tmp_path / "injectable"
        modules.mkdir()
        (modules / "clock.py").write_text("def injectable():\n    return 'disk'\n")
        (modules / "mailer.py").write_text("def injectable():\n    return 'disk mailer'\n")

        app = App(AppConfig(modules_dir=modules), modules={"clock": lambda: "explicit"})

        @app.contract("/").get
        async def index(modules: Injected):
            return {
                "clock": await modules.resolve("clock"),
                "mailer": await modules.resolve("mailer"),
            }

        async with TestClient(app) as client:
            response = await client.get("/")
        assert response.json == {"clock": "explicit", "mailer": "disk mailer"}

    async def test_mount_routes(self, tmp_path: Path) -> None:
        routes = tmp_path / "routes"
        (routes / "items" / "[id]").mkdir(parents=True)
        (routes / "items" / "route.py").write_text(
            "from perch import RouteContract\n"
            "route = RouteContract()\n"
            "route.get(lambda: {'items': []})\n"
        )
        (routes / "items" / "[id]" / "route.py").write_text(
            "from perch import RouteContract\n"
            "route = RouteContract()\n"
            "route.get_with_params(['id'], lambda data: {'id': data.params['id']},\n"
            "                      params={'id': {'type': 'number'}})\n"
        )

        app = App(AppConfig(routes_dir=routes))
        app.mount_routes()
        async with TestClient(app) as client:
            listing = await client.get("/items")
            item = await client.get("/items/3")
        assert listing.json == {"items": []}
        assert item.json["data"] == {"id": 3}


async def _lifespan(app: App) -> list[dict[str, Any]]:
    messages = [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}]
    sent: list[dict[str, Any]] = []

    async def receive() -> dict[str, Any]:
        return messages.pop(0)

    async def send(message: dict[str, Any]) -> None:
        sent.append(message)

    await app({"type": "lifespan"}, receive, send)
    return sent


class TestLifespan:
    async def test_hooks_and_eager_warm(self) -> None:
        calls: list[str] = []

        def factory():
            calls.append("factory")
            return object()

        app = App(AppConfig(eager_modules=True), modules={"db": factory})

        @app.on_startup
        async def started():
            calls.append("startup")

        @app.on_shutdown
        def stopped():
            calls.append("shutdown")

        sent = await _lifespan(app)
        assert [m["type"] for m in sent] == [
            "lifespan.startup.complete",
            "lifespan.shutdown.complete",
        ]
        assert calls == ["factory", "startup", "shutdown"]
        assert app.registry.is_resolved("db")

    async def test_lazy_by_default(self) -> None:
        app = App(modules={"db": object})
        await _lifespan(app)
        assert not app.registry.is_resolved("db")

    async def test_startup_failure(self) -> None:
        app = App()
        app.contract("/x").get_validated(lambda: {}, query={"n": {"type": "nope"}})
        sent = await _lifespan(app)
        assert sent[0]["type"] == "lifespan.startup.failed"
        assert "unknown type" in sent[0]["message"]
