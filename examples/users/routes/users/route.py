from dataclasses import asdict

from perch import Reply, RouteContract, ValidatedRequest
from perch.injection import Injected

route = RouteContract()

USER = {
    "id": {"type": "number", "required": True},
    "name": {"type": "string", "required": True},
    "email": {"type": "email", "required": True},
    "role": {"type": "string", "required": True},
}


@route.get_validated(
    query={
        "role": {"type": "string", "choices": ["admin", "member"]},
        "limit": {"type": "number", "min": 1, "max": 100},
    },
)
async def index(data: ValidatedRequest, modules: Injected):
    store = await modules.resolve("store")
    users = store.list(data.query.get("role"), int(data.query.get("limit", 20)))
    return {
        "users": [
            {"id": u.id, "name": u.name, "email": u.email, "role": u.role} for u in users
        ]
    }


@route.post_validated(
    body={
        "name": {"type": "string", "required": True, "min": 2, "max": 50},
        "email": {"type": "email", "required": True},
        "password": {"type": "string", "required": True, "min": 8},
        "role": {"type": "string", "choices": ["admin", "member"]},
    },
    responses={201: USER},
)
async def create(data: ValidatedRequest, reply: Reply, modules: Injected):
    store = await modules.resolve("store")
    audit = await modules.resolve("audit")
    body = data.body
    user = store.add(body["name"], body["email"], body.get("role", "member"), body["password"])
    audit.append(f"create {user.id}")
    reply.status = 201
    reply.set_header("Location", f"/users/{user.id}")
    # The stored record carries password_hash; shaping drops it
    return asdict(user)
