from perch import Request, RouteContract

route = RouteContract()


@route.get
def index():
    return {"service": "users", "status": "ok"}


@route.not_found
def not_found(request: Request):
    return {"success": False, "error": f"No route for {request.method} {request.path}"}
