"""
Trencher — Middleware Chain Tests
===================================

What:  Stage layout produced by ``build_chain``, execution order,
       short-circuiting and the structural checks of ``MiddlewareChain``.
"""

import pytest

from trencher.exceptions import ErrorKind, TrencherError
from trencher.middleware.upload import UploadConfig
from trencher.middleware.validation import ValidationAccumulator
from trencher.routing.chain import MiddlewareChain, Stage, StageKind, build_chain


class FakeContext:
    """Just enough of RequestContext for chains run outside HTTP."""

    method = "POST"
    path = "/things"

    def __init__(self, data=None):
        self.data = dict(data or {})
        self.validation = ValidationAccumulator()
        self.trace = []

    async def load_body(self):
        return self.data


def tracing(name):
    async def middleware(ctx, call_next):
        ctx.trace.append(name)
        return await call_next()

    middleware.__qualname__ = name
    return middleware


def handler(ctx):
    ctx.trace.append("handler")
    return {"ok": True}


class TestBuildChain:
    """Stage layout."""

    def test_write_chain_layout(self, upload_dir):
        chain = build_chain(
            handler,
            middlewares=[tracing("auth")],
            route_middlewares=[tracing("admin")],
            validation=lambda ctx: None,
            upload_config=UploadConfig(folder=str(upload_dir), file_field_names=["avatar"]),
        )
        assert chain.kinds == (
            StageKind.MIDDLEWARE,
            StageKind.MIDDLEWARE,
            StageKind.UPLOAD,
            StageKind.VALIDATE,
            StageKind.HANDLE,
        )
        assert chain.names == ("middleware:auth", "middleware:admin", "upload", "validate", "handle:handler")
        assert chain.handler is handler

    def test_upload_stage_requires_file_fields(self, upload_dir):
        chain = build_chain(handler, upload_config=UploadConfig(folder=str(upload_dir)))
        assert StageKind.UPLOAD not in chain.kinds
        assert chain.kinds == (StageKind.VALIDATE, StageKind.HANDLE)

    def test_ungated_chain_has_only_middlewares_and_handler(self):
        chain = build_chain(handler, middlewares=[tracing("auth")], gated=False)
        assert chain.kinds == (StageKind.MIDDLEWARE, StageKind.HANDLE)

    def test_gated_chain_without_validator_still_has_gate(self):
        chain = build_chain(handler)
        assert chain.kinds == (StageKind.VALIDATE, StageKind.HANDLE)

    def test_handler_is_required(self):
        with pytest.raises(ValueError):
            build_chain(None)


class TestChainStructure:
    """Invalid layouts are refused at construction."""

    def _stage(self, kind):
        return Stage(kind.value, kind, lambda *args: None)

    def test_empty_chain(self):
        with pytest.raises(ValueError, match="end in a handler"):
            MiddlewareChain(())

    def test_handler_must_be_last(self):
        with pytest.raises(ValueError):
            MiddlewareChain((self._stage(StageKind.HANDLE), self._stage(StageKind.MIDDLEWARE)))

    def test_single_handler(self):
        with pytest.raises(ValueError, match="exactly one handler"):
            MiddlewareChain((self._stage(StageKind.HANDLE), self._stage(StageKind.HANDLE)))

    def test_validate_before_upload_is_refused(self):
        with pytest.raises(ValueError, match="ordered"):
            MiddlewareChain(
                (
                    self._stage(StageKind.VALIDATE),
                    self._stage(StageKind.UPLOAD),
                    self._stage(StageKind.HANDLE),
                )
            )

    def test_duplicate_gate_is_refused(self):
        with pytest.raises(ValueError, match="at most one validate"):
            MiddlewareChain(
                (
                    self._stage(StageKind.VALIDATE),
                    self._stage(StageKind.VALIDATE),
                    self._stage(StageKind.HANDLE),
                )
            )


class TestChainExecution:
    """Running chains."""

    @pytest.mark.asyncio
    async def test_stages_run_in_order(self):
        chain = build_chain(handler, [tracing("first")], [tracing("second")], gated=False)
        ctx = FakeContext()

        result = await chain(ctx)

        assert result == {"ok": True}
        assert ctx.trace == ["first", "second", "handler"]

    @pytest.mark.asyncio
    async def test_middleware_can_short_circuit(self):
        def deny(ctx, call_next):
            ctx.trace.append("deny")
            return {"denied": True}

        chain = build_chain(handler, [deny, tracing("never")], gated=False)
        ctx = FakeContext()

        assert await chain(ctx) == {"denied": True}
        assert ctx.trace == ["deny"]

    @pytest.mark.asyncio
    async def test_middleware_error_propagates(self):
        async def guard(ctx, call_next):
            raise TrencherError.forbidden()

        chain = build_chain(handler, [guard], gated=False)
        ctx = FakeContext()

        with pytest.raises(TrencherError) as info:
            await chain(ctx)
        assert info.value.code == 403
        assert ctx.trace == []

    @pytest.mark.asyncio
    async def test_async_handler(self):
        async def fetch(ctx):
            return "fetched"

        assert await build_chain(fetch, gated=False)(FakeContext()) == "fetched"

    @pytest.mark.asyncio
    async def test_validation_errors_stop_the_handler(self):
        def validate(ctx):
            if not ctx.data.get("email"):
                ctx.validation.add("Email is required", field="email")
            if len(ctx.data.get("name", "")) < 2:
                ctx.validation.add("Name too short", field="name")

        chain = build_chain(handler, validation=validate)
        ctx = FakeContext({"name": "A"})

        with pytest.raises(TrencherError) as info:
            await chain(ctx)

        error = info.value
        assert error.kind is ErrorKind.UNPROCESSABLE_ENTITY
        assert error.code == 422
        assert [e["field"] for e in error.errors] == ["email", "name"]
        assert "handler" not in ctx.trace

    @pytest.mark.asyncio
    async def test_async_validator_passing(self):
        async def validate(ctx):
            return None

        ctx = FakeContext({"email": "a@b.c"})
        assert await build_chain(handler, validation=validate)(ctx) == {"ok": True}

    @pytest.mark.asyncio
    async def test_errors_recorded_by_middleware_are_flushed(self):
        def record(ctx, call_next):
            ctx.validation.add("Missing header", location="headers")
            return call_next()

        chain = build_chain(handler, [record])
        with pytest.raises(TrencherError) as info:
            await chain(FakeContext())
        assert info.value.errors == [{"message": "Missing header", "location": "headers"}]
