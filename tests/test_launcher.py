"""Test LifecycleController, the stdio adapter and the CLI exit codes.

Verifies that:
- Shutdown closes the adapter exactly once, even when triggered twice
- Signals lead to exit code 0, adapter failures to exit code 1
- stdio mode refuses to start without an API key
"""

from __future__ import annotations

import asyncio
import signal

import pytest

from specmanager_mcp import __main__ as cli
from specmanager_mcp.errors import ErrorKind, SpecManagerError
from specmanager_mcp.launcher import LifecycleController
from specmanager_mcp.mcp_server.http_transport import HttpGateway
from specmanager_mcp.mcp_server.stdio_transport import MISSING_KEY_MESSAGE, STDIO_SESSION_ID, StdioGateway

from tests.helpers import ALICE_KEY, WIDGETS_PROJECT_ID, FakeSpecManagerApi, make_client, make_config, make_registry


class _FakeAdapter:
    transport_name = "fake"

    def __init__(self, error: BaseException | None = None) -> None:
        self.error = error
        self.close_calls = 0
        self.stopped = asyncio.Event()

    async def serve(self) -> None:
        if self.error is not None:
            raise self.error
        await self.stopped.wait()

    async def close(self) -> None:
        self.close_calls += 1
        await asyncio.sleep(0)
        self.stopped.set()


class TestLifecycleController:
    @pytest.mark.asyncio
    async def test_concurrent_shutdown_closes_once(self):
        adapter = _FakeAdapter()
        controller = LifecycleController(adapter)

        await asyncio.gather(controller.shutdown(), controller.shutdown())

        assert adapter.close_calls == 1
        assert controller.cleanup_done

    @pytest.mark.asyncio
    async def test_signal_stops_serving_with_exit_code_zero(self):
        adapter = _FakeAdapter()
        controller = LifecycleController(adapter)
        run_task = asyncio.create_task(controller.run())
        await asyncio.sleep(0)

        controller._on_signal(signal.SIGTERM)
        controller._on_signal(signal.SIGINT)

        assert await asyncio.wait_for(run_task, timeout=5) == 0
        assert controller.signalled
        assert adapter.close_calls == 1

    @pytest.mark.asyncio
    async def test_normal_end_of_serving_exits_zero(self):
        adapter = _FakeAdapter()
        adapter.stopped.set()

        assert await LifecycleController(adapter).run() == 0
        assert adapter.close_calls == 1

    @pytest.mark.asyncio
    async def test_adapter_failure_exits_one(self):
        adapter = _FakeAdapter(error=OSError("address already in use"))

        assert await LifecycleController(adapter).run() == 1
        assert adapter.close_calls == 1

    @pytest.mark.asyncio
    async def test_bind_failure_exit_is_contained(self):
        adapter = _FakeAdapter(error=SystemExit(1))

        assert await LifecycleController(adapter).run() == 1
        assert adapter.close_calls == 1

    @pytest.mark.asyncio
    async def test_configuration_error_exits_one(self):
        adapter = _FakeAdapter(error=SpecManagerError("missing", ErrorKind.NOT_CONFIGURED))

        assert await LifecycleController(adapter).run() == 1

    @pytest.mark.asyncio
    async def test_shutdown_of_http_gateway_with_three_sessions(self):
        api = FakeSpecManagerApi()
        config = make_config()
        gateway = HttpGateway(config, registry=make_registry(api, config))
        controller = LifecycleController(gateway)

        async with gateway.registry.run():
            sessions = [await gateway.registry.create_session(ALICE_KEY) for _ in range(3)]

            await asyncio.gather(controller.shutdown(), controller.shutdown())

            assert len(gateway.registry) == 0
            assert all(s.closed and s.client.is_closed for s in sessions)


class TestStdioGateway:
    def test_requires_api_key(self):
        with pytest.raises(SpecManagerError) as exc_info:
            StdioGateway(make_config())

        assert exc_info.value.kind is ErrorKind.NOT_CONFIGURED
        assert exc_info.value.message == MISSING_KEY_MESSAGE

    @pytest.mark.asyncio
    async def test_builds_one_session_with_default_project(self):
        gateway = StdioGateway(make_config(api_key=ALICE_KEY, project_id=WIDGETS_PROJECT_ID))

        assert gateway.session.session_id == STDIO_SESSION_ID
        assert gateway.session.transport is None
        assert gateway.session.client.get_project_id() == WIDGETS_PROJECT_ID
        assert len(gateway.session.dispatcher.list_tools()) == 7
        await gateway.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        api = FakeSpecManagerApi()
        gateway = StdioGateway(make_config(), client=make_client(api))

        await gateway.close()
        await gateway.close()

        assert gateway.session.closed
        assert gateway.session.client.is_closed


class TestCli:
    def test_stdio_without_key_exits_one(self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]):
        monkeypatch.delenv("SPECMANAGER_API_KEY", raising=False)
        monkeypatch.setattr(cli, "load_dotenv", lambda: False)

        with pytest.raises(SystemExit) as exc_info:
            cli.main([])

        assert exc_info.value.code == 1
        assert f"Error [NOT_CONFIGURED]: {MISSING_KEY_MESSAGE}" in capsys.readouterr().err

    def test_invalid_port_exits_one(self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]):
        monkeypatch.setenv("PORT", "not-a-port")
        monkeypatch.setattr(cli, "load_dotenv", lambda: False)

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--http"])

        assert exc_info.value.code == 1
        assert "Configuration error" in capsys.readouterr().err

    def test_version(self, capsys: pytest.CaptureFixture[str]):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])

        assert exc_info.value.code == 0
        assert "specmanager-mcp" in capsys.readouterr().out

    def test_http_flags_reach_the_gateway(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(cli, "load_dotenv", lambda: False)
        captured = {}

        async def fake_run(self: LifecycleController) -> int:
            captured["adapter"] = self.adapter
            return 0

        monkeypatch.setattr(LifecycleController, "run", fake_run)

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--http", "--port=4100", "--host", "127.0.0.1", "--api-url", "http://localhost:8787/"])

        assert exc_info.value.code == 0
        adapter = captured["adapter"]
        assert isinstance(adapter, HttpGateway)
        assert adapter.config.port == 4100
        assert adapter.config.host == "127.0.0.1"
        assert adapter.config.api_url == "http://localhost:8787"
