import functools
import logging

import click.testing
import pytest
import yaml

from kubewire.cli import main

KUBECONFIG = {
    'current-context': 'ctx',
    'contexts': [{'name': 'ctx', 'context': {'cluster': 'c', 'user': 'u', 'namespace': 'ns1'}}],
    'clusters': [{'name': 'c', 'cluster': {'server': 'https://localhost:6443'}}],
    'users': [{'name': 'u', 'user': {'token': 'tkn'}}],
}


@pytest.fixture(autouse=True)
def _restore_logging():
    # The commands configure the root logger to write into the runner's streams.
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def kubeconfig(tmp_path):
    path = tmp_path / 'kubeconfig'
    path.write_text(yaml.safe_dump(KUBECONFIG))
    return str(path)


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner()
    return runner


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)
