"""
Trencher — Route Assembly Tests
=================================

What:  CRUD and custom route registration, checked twice: against the
       recording dispatcher (layout) and end-to-end through FastAPI
       (verbs, uploads, validation responses).
"""

import logging
import re
from pathlib import Path

import pytest

from trencher.middleware.upload import UPLOAD_FAILURE_MESSAGE, UploadConfig
from trencher.routing import (
    FastAPIDispatcher,
    ResourceDescriptor,
    StageKind,
    custom_get_route,
    custom_post_route,
    register_crud,
    register_custom_route,
)
from trencher.routing.dispatcher import to_framework_path


class UserController:
    """In-memory controller that records which handlers ran."""

    def __init__(self):
        self.calls = []
        self.users = {"1": {"id": "1", "name": "Ada"}}

    def list(self, ctx):
        self.calls.append("list")
        return list(self.users.values())

    def get(self, ctx):
        self.calls.append("get")
        return self.users[ctx.path_params["id"]]

    def create(self, ctx):
        self.calls.append("create")
        ctx.status_code = 201
        return {"data": ctx.data, "files": {k: [f.generated_name for f in v] for k, v in ctx.files.items()}}

    def update(self, ctx):
        self.calls.append("update")
        return {"id": ctx.path_params["id"], **ctx.data}

    def delete(self, ctx):
        self.calls.append("delete")
        return None


class PatchingUserController(UserController):
    def patch(self, ctx):
        self.calls.append("patch")
        return {"patched": ctx.path_params["id"]}


def require_name_and_email(ctx):
    if not ctx.data.get("name"):
        ctx.validation.add("Name is required", field="name")
    if not ctx.data.get("email"):
        ctx.validation.add("Email is required", field="email")


class TestResourceDescriptor:
    """Descriptor checks at construction."""

    def test_missing_required_handler(self):
        with pytest.raises(ValueError, match="delete"):
            ResourceDescriptor("/users", {"list": print, "get": print, "create": print, "update": print})

    def test_unknown_validation_key(self):
        with pytest.raises(ValueError, match="Validation"):
            ResourceDescriptor("/users", UserController(), validation={"delete": print})

    def test_unknown_per_route_key(self):
        with pytest.raises(ValueError, match="per_route_middlewares"):
            ResourceDescriptor("/users", UserController(), per_route_middlewares={"purge": []})

    def test_controller_mapping_is_frozen(self):
        descriptor = ResourceDescriptor("/users", UserController())
        with pytest.raises(TypeError):
            descriptor.controller["patch"] = print

    def test_invalid_id_property_name(self):
        with pytest.raises(ValueError, match="identifier"):
            ResourceDescriptor("/users", UserController(), id_property_name="user-id")


class TestRegisterCrud:
    """Layout against the recording dispatcher."""

    def test_five_routes_without_patch(self, dispatcher):
        routes = register_crud(dispatcher, ResourceDescriptor("/api/users", UserController()))

        assert [(r.verb, r.path) for r in routes] == [
            ("GET", "/api/users"),
            ("GET", "/api/users/:id"),
            ("POST", "/api/users"),
            ("PUT", "/api/users/:id"),
            ("DELETE", "/api/users/:id"),
        ]
        assert [r.operation for r in routes] == ["list", "get", "create", "update", "delete"]
        assert len(dispatcher.routes) == 5

    def test_six_routes_with_patch(self, dispatcher):
        routes = register_crud(dispatcher, ResourceDescriptor("/api/users", PatchingUserController()))
        assert len(routes) == 6
        assert ("PATCH", "/api/users/:id") in [(r.verb, r.path) for r in routes]

    def test_custom_id_property(self, dispatcher):
        register_crud(dispatcher, ResourceDescriptor("/posts", UserController(), id_property_name="slug"))
        assert dispatcher.chain_for("GET", "/posts/:slug") is not None

    def test_item_paths_with_trailing_slash_base(self, dispatcher):
        routes = register_crud(dispatcher, ResourceDescriptor("/api/users/", UserController(), id_property_name="userId"))
        assert [r.path for r in routes if r.operation in ("get", "update", "delete")] == ["/api/users/:userId"] * 3

    def test_middleware_order_and_gates(self, dispatcher, upload_dir):
        def auth(ctx, call_next):
            return call_next()

        def admin(ctx, call_next):
            return call_next()

        register_crud(
            dispatcher,
            ResourceDescriptor(
                "/api/users",
                PatchingUserController(),
                validation={"create": require_name_and_email},
                upload_config=UploadConfig(folder=str(upload_dir), file_field_names=["avatar"]),
                middlewares=[auth],
                per_route_middlewares={"delete": [admin], "create": [admin]},
            ),
        )

        create = dispatcher.chain_for("POST", "/api/users")
        assert [name.rsplit(".", 1)[-1] for name in create.names[:2]] == ["auth", "admin"]
        assert create.kinds[2:] == (StageKind.UPLOAD, StageKind.VALIDATE, StageKind.HANDLE)

        for verb in ("PUT", "PATCH"):
            assert dispatcher.chain_for(verb, "/api/users/:id").kinds == (
                StageKind.MIDDLEWARE,
                StageKind.UPLOAD,
                StageKind.VALIDATE,
                StageKind.HANDLE,
            )

        assert dispatcher.chain_for("GET", "/api/users").kinds == (StageKind.MIDDLEWARE, StageKind.HANDLE)
        assert dispatcher.chain_for("DELETE", "/api/users/:id").kinds == (
            StageKind.MIDDLEWARE,
            StageKind.MIDDLEWARE,
            StageKind.HANDLE,
        )

    def test_registering_twice_duplicates(self, dispatcher):
        descriptor = ResourceDescriptor("/api/users", UserController())
        register_crud(dispatcher, descriptor)
        register_crud(dispatcher, descriptor)
        assert len(dispatcher.routes) == 10


class TestCustomRoutes:
    def test_get_is_ungated(self, dispatcher):
        route = custom_get_route(dispatcher, "/health", lambda ctx: {"ok": True})
        assert route.chain.kinds == (StageKind.HANDLE,)

    def test_post_is_gated(self, dispatcher):
        route = custom_post_route(dispatcher, "/login", lambda ctx: None)
        assert route.chain.kinds == (StageKind.VALIDATE, StageKind.HANDLE)

    def test_get_refuses_validation(self, dispatcher):
        with pytest.raises(ValueError):
            register_custom_route(dispatcher, "GET", "/search", print, validation=print)

    def test_unsupported_verb(self, dispatcher):
        with pytest.raises(ValueError, match="Unsupported HTTP verb"):
            register_custom_route(dispatcher, "OPTIONS", "/x", print)

    def test_verb_is_case_insensitive(self, dispatcher):
        assert register_custom_route(dispatcher, "put", "/x", print).verb == "PUT"


class TestFrameworkPath:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("/api/users/:id", "/api/users/{id}"),
            ("api/users", "/api/users"),
            ("/a/:parent_id/b/:child", "/a/{parent_id}/b/{child}"),
        ],
    )
    def test_conversion(self, path, expected):
        assert to_framework_path(path) == expected


class TestCrudOverHttp:
    """End-to-end through FastAPI and the ASGI transport."""

    @pytest.mark.asyncio
    async def test_verbs_reach_their_handlers_only(self, app, http_client):
        controller = UserController()
        register_crud(FastAPIDispatcher(app), ResourceDescriptor("/api/users", controller))

        assert (await http_client.get("/api/users")).json() == [{"id": "1", "name": "Ada"}]
        assert (await http_client.get("/api/users/1")).json() == {"id": "1", "name": "Ada"}
        assert (await http_client.delete("/api/users/1")).status_code == 204

        # No PATCH handler, so no PATCH route: the path exists, the verb does not.
        response = await http_client.patch("/api/users/1", json={"name": "Bea"})
        assert response.status_code == 405
        assert controller.calls == ["list", "get", "delete"]

    @pytest.mark.asyncio
    async def test_patch_route_when_controller_has_patch(self, app, http_client):
        register_crud(FastAPIDispatcher(app), ResourceDescriptor("/api/users", PatchingUserController()))
        response = await http_client.patch("/api/users/9", json={})
        assert response.status_code == 200
        assert response.json() == {"patched": "9"}

    @pytest.mark.asyncio
    async def test_update_receives_json_body_and_path_params(self, app, http_client):
        register_crud(FastAPIDispatcher(app), ResourceDescriptor("/api/users", UserController()))
        response = await http_client.put("/api/users/1", json={"name": "Bea"})
        assert response.json() == {"id": "1", "name": "Bea"}

    @pytest.mark.asyncio
    async def test_upload_is_optional(self, app, http_client, upload_dir):
        controller = UserController()
        register_crud(
            FastAPIDispatcher(app),
            ResourceDescriptor(
                "/api/users",
                controller,
                upload_config=UploadConfig(folder=str(upload_dir), file_field_names=["avatar"]),
            ),
        )

        response = await http_client.post("/api/users", data={"name": "Ada"})

        assert response.status_code == 201
        assert response.json() == {"data": {"name": "Ada"}, "files": {}}
        assert controller.calls == ["create"]

    @pytest.mark.asyncio
    async def test_upload_stores_declared_files(self, app, http_client, upload_dir, sample_image_bytes):
        register_crud(
            FastAPIDispatcher(app),
            ResourceDescriptor(
                "/api/users",
                UserController(),
                upload_config=UploadConfig(folder=str(upload_dir), file_field_names=["avatar"]),
            ),
        )

        response = await http_client.post(
            "/api/users",
            data={"name": "Ada"},
            files={"avatar": ("me.png", sample_image_bytes, "image/png")},
        )

        assert response.status_code == 201
        body = response.json()
        [generated] = body["files"]["avatar"]
        assert re.fullmatch(r"[0-9a-z]{7}-\d+\.png", generated)
        assert body["data"]["name"] == "Ada"
        assert body["data"]["avatar"] == str(upload_dir / generated)
        assert (upload_dir / generated).read_bytes() == sample_image_bytes

    @pytest.mark.asyncio
    async def test_undeclared_file_field_fails_the_request(self, app, http_client, upload_dir):
        controller = UserController()
        register_crud(
            FastAPIDispatcher(app),
            ResourceDescriptor(
                "/api/users",
                controller,
                upload_config=UploadConfig(folder=str(upload_dir), file_field_names=["avatar"]),
            ),
        )

        response = await http_client.post(
            "/api/users",
            files={"resume": ("cv.pdf", b"%PDF-1.4", "application/pdf")},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "internal_server"
        assert body["message"] == UPLOAD_FAILURE_MESSAGE
        assert body["details"] == {"field": "resume"}
        assert controller.calls == []

    @pytest.mark.asyncio
    async def test_storage_failure_hides_server_paths(self, app, http_client, tmp_path, caplog):
        blocker = tmp_path / "occupied"
        blocker.write_text("not a folder")
        custom_post_route(
            FastAPIDispatcher(app),
            "/avatars",
            lambda ctx: {"stored": True},
            upload_config=UploadConfig(folder=str(blocker / "uploads"), file_field_names=["avatar"]),
        )

        with caplog.at_level(logging.ERROR, logger="trencher.middleware.upload"):
            response = await http_client.post("/avatars", files={"avatar": ("a.png", b"png", "image/png")})

        assert response.status_code == 500
        assert response.json()["message"] == UPLOAD_FAILURE_MESSAGE
        assert response.json()["details"] == {"field": "avatar"}
        assert str(tmp_path) not in response.text
        assert "could not write file" in caplog.text

    @pytest.mark.asyncio
    async def test_malformed_json_is_a_client_error(self, app, http_client):
        calls = []
        custom_post_route(FastAPIDispatcher(app), "/things", lambda ctx: calls.append(ctx) or {"ok": True})

        response = await http_client.post(
            "/things",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation"
        assert body["errors"] == [{"message": "Malformed JSON body", "location": "body"}]
        assert calls == []

    @pytest.mark.asyncio
    async def test_validation_failure_returns_all_errors(self, app, http_client):
        controller = UserController()
        register_crud(
            FastAPIDispatcher(app),
            ResourceDescriptor("/api/users", controller, validation={"create": require_name_and_email}),
        )

        response = await http_client.post("/api/users", json={})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "unprocessable_entity"
        assert body["code"] == 422
        assert [e["message"] for e in body["errors"]] == ["Name is required", "Email is required"]
        assert body["request_id"]
        assert controller.calls == []

    @pytest.mark.asyncio
    async def test_validation_pass_reaches_handler(self, app, http_client):
        controller = UserController()
        register_crud(
            FastAPIDispatcher(app),
            ResourceDescriptor("/api/users", controller, validation={"create": require_name_and_email}),
        )

        response = await http_client.post("/api/users", json={"name": "Ada", "email": "ada@example.com"})

        assert response.status_code == 201
        assert controller.calls == ["create"]

    @pytest.mark.asyncio
    async def test_request_id_header_is_echoed(self, app, http_client):
        custom_get_route(FastAPIDispatcher(app), "/ping", lambda ctx: {"pong": True})
        response = await http_client.get("/ping", headers={"X-Request-ID": "abc12345"})
        assert response.headers["X-Request-ID"] == "abc12345"

    @pytest.mark.asyncio
    async def test_missing_upload_folder_is_created(self, app, http_client, upload_dir):
        custom_post_route(
            FastAPIDispatcher(app),
            "/avatars",
            lambda ctx: {"stored": ctx.data["avatar"]},
            upload_config=UploadConfig(folder=str(upload_dir), file_field_names="avatar"),
        )
        assert not upload_dir.exists()

        response = await http_client.post("/avatars", files={"avatar": ("a.txt", b"hi", "text/plain")})

        assert response.status_code == 200
        assert Path(response.json()["stored"]).parent == upload_dir
