import logging
import socket

import pytest

from tailcast.config import ENV_CONFIG
from tailcast.logger import ROOT
from tailcast.main import main


@pytest.fixture
def run_main(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_CONFIG, raising=False)
    log_file = tmp_path / "logs" / "tailcast.log"
    config = tmp_path / "config.yaml"
    config.write_text(
        "server:\n"
        "  host: 127.0.0.1\n"
        "log:\n"
        f"  file_path: {log_file}\n",
        encoding="utf-8",
    )

    def _run(*args):
        return main(["-c", str(config), *args])

    yield _run, log_file
    logger = logging.getLogger(ROOT)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()


def test_bind_failure_exits_with_status_1(run_main, tmp_path):
    run, log_file = run_main
    watched = tmp_path / "app.log"
    watched.write_bytes(b"")
    holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    holder.bind(("127.0.0.1", 0))
    holder.listen()
    port = holder.getsockname()[1]
    try:
        assert run("--file", str(watched), "--port", str(port)) == 1
    finally:
        holder.close()

    assert "[CRITICAL]" in log_file.read_text(encoding="utf-8")


def test_missing_watched_file_exits_with_status_1(run_main, tmp_path):
    run, log_file = run_main

    assert run("--file", str(tmp_path / "missing.log"), "--port", "0") == 1

    text = log_file.read_text(encoding="utf-8")
    assert "[CRITICAL]" in text
    assert "missing.log" in text
