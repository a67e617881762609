"""Tests for the server-side batch executor."""

import asyncio
import time

import pytest
from fastapi import HTTPException

from pathrpc.config import ServerConfig
from pathrpc.errors import RpcException
from pathrpc.server import BatchExecutor, Context, PathRegistry, route, router
from pathrpc.types import MISSING, BatchItem, ErrorInfo, Failure, Success

pytestmark = pytest.mark.asyncio


def _item(call_id, dotted, input=MISSING):
    return BatchItem(id=call_id, path=tuple(dotted.split(".")), input=input)


def _by_id(results):
    return {result.id: result.outcome for result in results}


class TestExecute:
    async def test_results_correlated_by_id(self, registry):
        executor = BatchExecutor(registry)
        results = await executor.execute([
            _item("1", "users.get_user", {"id": "2"}),
            _item("2", "users.list_users"),
            _item("3", "math.add", {"a": 2, "b": 3}),
        ])
        assert [result.id for result in results] == ["1", "2", "3"]
        outcomes = _by_id(results)
        assert outcomes["1"] == Success({"id": "2", "name": "Grace"})
        assert len(outcomes["2"].data) == 2
        assert outcomes["3"] == Success(5)

    async def test_failures_are_isolated(self, registry):
        results = await BatchExecutor(registry).execute([
            _item("1", "math.fail"),
            _item("2", "math.add", {"a": 1, "b": 1}),
            _item("3", "users.nope"),
        ])
        outcomes = _by_id(results)
        assert outcomes["1"] == Failure(ErrorInfo(500, "ValueError", "boom"))
        assert outcomes["2"] == Success(2)
        assert outcomes["3"].error.code == 404
        assert outcomes["3"].error.name == "NotFoundError"

    async def test_rpc_exception_status(self, registry):
        results = await BatchExecutor(registry).execute([_item("1", "users.get_user", {"id": "99"})])
        assert results[0].outcome == Failure(ErrorInfo(404, "UserNotFound", "User 99 not found"))

    async def test_validation_error(self, registry):
        results = await BatchExecutor(registry).execute([_item("1", "users.get_user", {})])
        error = results[0].outcome.error
        assert error.code == 400
        assert error.name == "ValidationError"
        assert "id" in error.message

    async def test_missing_input_uses_default(self, registry):
        results = await BatchExecutor(registry).execute([
            _item("1", "math.echo"),
            _item("2", "math.echo", None),
            _item("3", "math.echo", [1]),
        ])
        outcomes = _by_id(results)
        assert outcomes["1"] == Success({"input": None})
        assert outcomes["2"] == Success({"input": None})
        assert outcomes["3"] == Success({"input": [1]})

    async def test_context_bindings(self, registry):
        results = await BatchExecutor(registry).execute(
            [_item("7", "math.whoami")], {"headers": {"x-agent": "pytest"}}
        )
        assert results[0].outcome == Success({"call_id": "7", "agent": "pytest"})

    async def test_context_default(self, registry):
        results = await BatchExecutor(registry).execute([_item("1", "math.whoami")])
        assert results[0].outcome == Success({"call_id": "1", "agent": None})

    async def test_missing_context_value_fails_call(self):
        @router()
        class NeedsUser:
            @route()
            def me(self, input=None, user=Context("user")):
                return user

        registry = PathRegistry.build({"auth": NeedsUser})
        results = await BatchExecutor(registry).execute([_item("1", "auth.me")])
        assert results[0].outcome.error.name == "LookupError"

    async def test_async_calls_run_concurrently(self, registry):
        start = time.perf_counter()
        results = await BatchExecutor(registry).execute([
            _item(str(i), "math.slow", {"delay": 0.2, "value": i}) for i in range(1, 4)
        ])
        elapsed = time.perf_counter() - start
        assert [r.outcome.data for r in results] == [1, 2, 3]
        assert elapsed < 0.5

    async def test_blocking_calls_run_concurrently(self, registry):
        start = time.perf_counter()
        results = await BatchExecutor(registry).execute([
            _item(str(i), "math.blocking", {"delay": 0.2, "value": i}) for i in range(1, 4)
        ])
        elapsed = time.perf_counter() - start
        assert all(r.ok for r in results)
        assert elapsed < 0.5

    async def test_empty_batch(self, registry):
        assert await BatchExecutor(registry).execute([]) == []


class TestErrorInfo:
    async def test_http_exception(self, registry):
        info = BatchExecutor(registry).error_info(HTTPException(status_code=403, detail="forbidden"))
        assert info == ErrorInfo(403, "HTTPException", "forbidden")

    async def test_rpc_exception(self, registry):
        info = BatchExecutor(registry).error_info(RpcException("slow down", status=429, name="RateLimited"))
        assert info == ErrorInfo(429, "RateLimited", "slow down")

    async def test_hidden_internal_errors(self, registry):
        executor = BatchExecutor(registry, ServerConfig(expose_internal_errors=False))
        info = executor.error_info(KeyError("secret"))
        assert info == ErrorInfo(500, "KeyError", "Internal server error")

    async def test_exposed_internal_errors(self, registry):
        info = BatchExecutor(registry).error_info(RuntimeError("disk full"))
        assert info == ErrorInfo(500, "RuntimeError", "disk full")


class TestReturnValues:
    async def test_pydantic_and_awaitable_results(self):
        from pydantic import BaseModel

        class User(BaseModel):
            id: str

        @router()
        class Models:
            @route()
            async def user(self, input=None):
                return User(id="1")

            @route()
            def deferred(self, input=None):
                return asyncio.sleep(0, result={"late": True})

        registry = PathRegistry.build({"m": Models})
        outcomes = _by_id(await BatchExecutor(registry).execute([
            _item("1", "m.user"),
            _item("2", "m.deferred"),
        ]))
        assert outcomes["1"] == Success({"id": "1"})
        assert outcomes["2"] == Success({"late": True})

    async def test_non_json_result_fails_only_its_call(self):
        @router()
        class Numbers:
            @route()
            def ratio(self, input=None):
                return {"value": float("nan")}

            @route()
            def ok(self, input=None):
                return 1

        registry = PathRegistry.build({"n": Numbers})
        outcomes = _by_id(await BatchExecutor(registry).execute([
            _item("1", "n.ratio"),
            _item("2", "n.ok"),
        ]))
        assert outcomes["1"].error.code == 500
        assert outcomes["1"].error.name == "ValueError"
        assert outcomes["2"] == Success(1)
