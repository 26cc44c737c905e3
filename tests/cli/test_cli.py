# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for TabTuner CLI commands."""

import json
import os
import socket
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tabtuner import __version__
from tabtuner.config import OutputFormat, TunerConfig
from tabtuner.exceptions import SubprocessError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep developer TABTUNER_* settings out of the parser defaults."""
    for name in list(os.environ):
        if name.startswith("TABTUNER_") or name in ("CHROME_BIN", "DOCKER"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TABTUNER_DATA_DIR", str(tmp_path))


class TestServeParser:
    """Tests for the serve argument parser."""

    def test_banner(self):
        from tabtuner.cli.serve import BANNER

        assert BANNER
        assert "|" in BANNER

    def test_defaults(self, tmp_path):
        from tabtuner.cli.serve import create_parser

        args = create_parser().parse_args([])

        assert args.port == 5589
        assert args.video_bitrate == 8_000_000
        assert args.audio_bitrate == 256_000
        assert args.output_format == TunerConfig().output_format.value
        assert args.minimize_window is False
        assert args.log_level == "info"
        assert args.data_dir == str(tmp_path)

    def test_short_flags(self):
        from tabtuner.cli.serve import build_config, create_parser

        args = create_parser().parse_args(
            ["-v", "6000000", "-a", "128000", "-f", "60", "-p", "8080",
             "-w", "1280", "-H", "720", "-m", "-o", "webm"]
        )
        config = build_config(args)

        assert config.video_bitrate == 6_000_000
        assert config.audio_bitrate == 128_000
        assert config.min_frame_rate == 60
        assert config.max_frame_rate == 60
        assert config.port == 8080
        assert (config.width, config.height) == (1280, 720)
        assert config.minimize_window is True
        assert config.output_format == OutputFormat.WEBM
        assert not config.transcoding

    def test_low_frame_rate_keeps_ceiling(self):
        from tabtuner.cli.serve import build_config, create_parser

        config = build_config(create_parser().parse_args(["-f", "24"]))

        assert config.min_frame_rate == 24
        assert config.max_frame_rate == 50

    def test_environment_defaults(self, monkeypatch):
        from tabtuner.cli.serve import create_parser

        monkeypatch.setenv("TABTUNER_PORT", "9000")
        monkeypatch.setenv("TABTUNER_OUTPUT_FORMAT", "webm")

        args = create_parser().parse_args([])

        assert args.port == 9000
        assert args.output_format == "webm"

    def test_rejects_unknown_format(self):
        from tabtuner.cli.serve import create_parser

        with pytest.raises(SystemExit):
            create_parser().parse_args(["-o", "mkv"])


class TestServeMain:
    """Tests for serve.main and the listener setup."""

    def test_main_runs_servers(self):
        from tabtuner.cli import serve

        with patch.object(serve, "run_servers", new=AsyncMock()) as run_servers, \
                patch.object(serve, "print_settings") as print_settings:
            assert serve.main(["-p", "8080", "-o", "webm"]) == 0

        run_servers.assert_awaited_once()
        config = run_servers.await_args.args[0]
        assert config.port == 8080
        assert run_servers.await_args.kwargs["log_level"] == "info"
        print_settings.assert_called_once_with(config)

    def test_invalid_config_exits_2(self, capsys):
        from tabtuner.cli import serve

        with patch.object(serve, "run_servers", new=AsyncMock()) as run_servers:
            assert serve.main(["-v", "0"]) == 2

        run_servers.assert_not_awaited()
        assert "video_bitrate must be positive" in capsys.readouterr().err

    def test_invalid_environment_exits_2(self, monkeypatch, capsys):
        from tabtuner.cli import serve

        monkeypatch.setenv("TABTUNER_QUEUE_WAIT", "soon")
        with patch.object(serve, "run_servers", new=AsyncMock()) as run_servers:
            assert serve.main([]) == 2

        run_servers.assert_not_awaited()
        assert "Error: TABTUNER_QUEUE_WAIT must be a number" in capsys.readouterr().err

    def test_port_in_use(self):
        from tabtuner.cli.serve import port_available

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            port = sock.getsockname()[1]
            assert port_available("127.0.0.1", port) is False

    @pytest.mark.asyncio
    async def test_run_servers_starts_discovery_listener(self, tmp_path):
        from tabtuner.cli import serve

        servers = []

        def make_server(config):
            server = MagicMock()
            server.serve = AsyncMock()
            servers.append(server)
            return server

        config = TunerConfig(data_dir=tmp_path)
        with patch("uvicorn.Server", side_effect=make_server), \
                patch("uvicorn.Config") as uvicorn_config, \
                patch.object(serve, "port_available", return_value=True):
            await serve.run_servers(config, log_level="debug")

        assert len(servers) == 2
        primary_call, discovery_call = uvicorn_config.call_args_list
        assert primary_call.kwargs["port"] == 5589
        assert primary_call.kwargs["log_level"] == "debug"
        assert discovery_call.kwargs["port"] == 5004
        assert discovery_call.kwargs["lifespan"] == "off"
        servers[0].serve.assert_awaited_once()
        servers[1].serve.assert_awaited_once()
        assert servers[1].should_exit is True

    @pytest.mark.asyncio
    async def test_run_servers_skips_busy_discovery_port(self, tmp_path):
        from tabtuner.cli import serve

        config = TunerConfig(data_dir=tmp_path)
        with patch("uvicorn.Server") as server_cls, \
                patch("uvicorn.Config"), \
                patch.object(serve, "port_available", return_value=False):
            server_cls.return_value.serve = AsyncMock()
            await serve.run_servers(config)

        assert server_cls.call_count == 1

    @pytest.mark.asyncio
    async def test_same_port_disables_discovery(self, tmp_path):
        from tabtuner.cli import serve

        config = TunerConfig(data_dir=tmp_path, port=5004, discovery_port=5004)
        with patch("uvicorn.Server") as server_cls, \
                patch("uvicorn.Config"), \
                patch.object(serve, "port_available") as port_available:
            server_cls.return_value.serve = AsyncMock()
            await serve.run_servers(config)

        port_available.assert_not_called()
        assert server_cls.call_count == 1


class TestMainCLI:
    """Tests for the unified tabtuner command."""

    def test_version(self, capsys):
        from tabtuner.cli.main import main

        assert main(["version"]) == 0
        assert capsys.readouterr().out.strip() == f"TabTuner {__version__}"

    def test_version_json(self, capsys):
        from tabtuner.cli.main import main

        assert main(["version", "--json"]) == 0
        info = json.loads(capsys.readouterr().out)
        assert info["tabtuner"] == __version__
        assert "python" in info

    def test_no_command_prints_help(self, capsys):
        from tabtuner.cli.main import main

        assert main([]) == 0
        assert "serve" in capsys.readouterr().out

    def test_serve_delegates_remaining_args(self):
        from tabtuner.cli.main import main

        with patch("tabtuner.cli.serve.main", return_value=0) as serve_main:
            assert main(["serve", "-p", "9000", "-o", "webm"]) == 0

        serve_main.assert_called_once_with(["-p", "9000", "-o", "webm"])

    def test_doctor_all_found(self, capsys):
        from tabtuner.cli import main as cli

        with patch.object(cli, "resolve_executable_path", return_value="/usr/bin/chromium"), \
                patch.object(cli, "find_ffmpeg", return_value="/usr/bin/ffmpeg"):
            assert cli.main(["doctor"]) == 0

        out = capsys.readouterr().out
        assert "Browser: /usr/bin/chromium" in out
        assert "FFmpeg: /usr/bin/ffmpeg" in out
        assert "All checks passed" in out

    def test_doctor_missing_ffmpeg_fails_for_mpegts(self, monkeypatch, capsys):
        from tabtuner.cli import main as cli

        monkeypatch.setenv("TABTUNER_OUTPUT_FORMAT", "mpegts")
        with patch.object(cli, "resolve_executable_path", return_value="/usr/bin/chromium"), \
                patch.object(cli, "find_ffmpeg", side_effect=SubprocessError("FFmpeg not found")):
            assert cli.main(["doctor"]) == 1

        assert "[FAIL] FFmpeg: FFmpeg not found" in capsys.readouterr().out

    def test_doctor_missing_ffmpeg_warns_for_webm(self, monkeypatch, capsys):
        from tabtuner.cli import main as cli

        monkeypatch.setenv("TABTUNER_OUTPUT_FORMAT", "webm")
        with patch.object(cli, "resolve_executable_path", return_value="/usr/bin/chromium"), \
                patch.object(cli, "find_ffmpeg", side_effect=SubprocessError("FFmpeg not found")):
            assert cli.main(["doctor"]) == 0

        assert "[WARN] FFmpeg: FFmpeg not found" in capsys.readouterr().out
