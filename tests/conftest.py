"""Shared fixtures for launcher tests."""

import sys
import tempfile
import textwrap
from pathlib import Path

import pytest

CONTRACT_ADDRESS = "0xABCDEF0123456789ABCDEF0123456789ABCDEF01"

SERVER_SOURCE = """const express = require('express');
const networkId = '5777';
const app = express();
app.listen(5000, () => console.log('Server on port 5000'));
"""


def python_command(script: str) -> list[str]:
    """Command that runs ``script`` in an unbuffered Python interpreter."""
    return [sys.executable, "-u", "-c", textwrap.dedent(script)]


@pytest.fixture
def temp_dir():
    """Temporary directory removed after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def python_cmd():
    return python_command


@pytest.fixture
def project_dir(temp_dir):
    """Minimal project layout with a server entry point and a contract artifact."""
    server_dir = temp_dir / "server"
    server_dir.mkdir()
    (server_dir / "index.js").write_text(SERVER_SOURCE, encoding="utf-8")

    build_dir = temp_dir / "build" / "contracts"
    build_dir.mkdir(parents=True)
    (build_dir / "AgriSupplyChain.json").write_text(
        '{"contractName": "AgriSupplyChain", "abi": [], '
        '"networks": {"5777": {"address": "%s"}}}' % CONTRACT_ADDRESS,
        encoding="utf-8",
    )
    return temp_dir
