"""Perch — schema-validated routes and injected modules for ASGI services.

A route declares the shape of its query, body, and path parameters and
the shape of every response by status code. Perch validates and coerces
the input, injects named modules, calls the handler, and filters the
output down to what was declared.

Basic usage::

    from perch import App, RouteContract, ValidatedRequest

    app = App()
    users = app.contract("/users")

    @users.get_validated(
        query={"name": {"type": "string", "required": True, "min": 2}},
        responses={200: {"name": {"type": "string", "required": True}}},
    )
    def search(data: ValidatedRequest):
        return {"name": data.query["name"], "internal": "dropped"}

    app.run()

Serving needs an ASGI server (``pip install perch[server]``).
"""

__version__ = "0.1.0"
__all__ = [
    "App",
    "AppConfig",
    "CompiledRoute",
    "ConfigurationError",
    "FieldSchema",
    "HTTPError",
    "Injected",
    "MethodNotAllowed",
    "Middleware",
    "ModuleRegistry",
    "Next",
    "NotFound",
    "PerchError",
    "RegistryResolutionError",
    "Reply",
    "Request",
    "Response",
    "RouteContract",
    "ShapeError",
    "ValidatedRequest",
]

# Public name -> defining module, imported on first access
_EXPORTS: dict[str, str] = {
    "App": "perch.app",
    "AppConfig": "perch.config",
    "CompiledRoute": "perch.contract",
    "RouteContract": "perch.contract",
    "Reply": "perch.dispatch",
    "ValidatedRequest": "perch.dispatch",
    "FieldSchema": "perch.schema.fields",
    "Injected": "perch.injection.registry",
    "ModuleRegistry": "perch.injection.registry",
    "Middleware": "perch.middleware.protocol",
    "Next": "perch.middleware.protocol",
    "Request": "perch.http.request",
    "Response": "perch.http.response",
    "ConfigurationError": "perch.errors",
    "HTTPError": "perch.errors",
    "MethodNotAllowed": "perch.errors",
    "NotFound": "perch.errors",
    "PerchError": "perch.errors",
    "RegistryResolutionError": "perch.errors",
    "ShapeError": "perch.errors",
}


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import perch`` fast while providing a clean top-level API.
    """
    module_name = _EXPORTS.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)

    import importlib

    return getattr(importlib.import_module(module_name), name)
