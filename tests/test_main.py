"""Tests for the command line entry points."""

from unittest.mock import AsyncMock, patch

import pytest

from herald import __main__ as cli
from herald.config import Settings
from herald.exceptions import ConfigurationError


class TestEntryPoints:
    """Tests for herald-worker and herald-api."""

    def test_bad_configuration_exits(self):
        with patch.object(cli, "load_settings", side_effect=ConfigurationError("bad port")):
            with pytest.raises(SystemExit) as exc_info:
                cli.main()

        assert exc_info.value.code == 2

    def test_main_runs_worker_with_loaded_settings(self):
        settings = Settings(_env_file=None, env="test")
        with (
            patch.object(cli, "load_settings", return_value=settings),
            patch.object(cli, "run_worker", new=AsyncMock()) as run_worker,
        ):
            cli.main()

        run_worker.assert_awaited_once_with(settings)

    def test_serve_runs_uvicorn(self):
        settings = Settings(_env_file=None, env="test", api_host="0.0.0.0", api_port=9000)
        with (
            patch.object(cli, "load_settings", return_value=settings),
            patch.object(cli.uvicorn, "run") as run,
        ):
            cli.serve()

        run.assert_called_once()
        assert run.call_args.kwargs["host"] == "0.0.0.0"
        assert run.call_args.kwargs["port"] == 9000
        assert run.call_args.args[0].title == "Herald"
