import logging

import pytest
import yaml
from click.testing import CliRunner

from stackdeploy.CLI.main import cli
from stackdeploy.exceptions import PlatformError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for key in ('STACKDEPLOY_LOG_LEVEL', 'STACKDEPLOY_DOCKER_HOST', 'DOCKER_SOCKET'):
        monkeypatch.delenv(key, raising=False)
    # The CLI installs a root handler on the runner's stream; put the old ones back
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake(platform):
    return platform


@pytest.fixture
def compose_file(tmp_path, example_document):
    path = tmp_path / "docker-compose.yml"
    path.write_text(example_document)
    return str(path)


def run(fake, args):
    runner = CliRunner()
    return runner.invoke(cli, args, obj={'platform': fake})


def test_cli_help():
    runner = CliRunner()
    result = runner.invoke(cli, ['--help'])
    assert result.exit_code == 0
    for command in ('config', 'deploy', 'ls', 'inspect', 'stop', 'rm'):
        assert command in result.output


def test_config(fake, compose_file):
    result = run(fake, ['config', '-f', compose_file])
    assert result.exit_code == 0
    parsed = yaml.safe_load(result.output)
    assert list(parsed['services']) == ['web', 'db']
    assert parsed['services']['db']['restart'] == 'unless-stopped'
    assert fake.calls == []


def test_config_invalid(fake, tmp_path):
    path = tmp_path / "broken.yml"
    path.write_text("version: '3'\n")
    result = run(fake, ['config', '-f', str(path)])
    assert result.exit_code == 1
    assert 'Error: Invalid Compose file: missing services section' in result.output


def test_deploy(fake, compose_file):
    result = run(fake, ['deploy', 'myapp', '-f', compose_file])
    assert result.exit_code == 0
    assert "Successfully deployed stack 'myapp' with 2 services" in result.output
    assert 'Services: myapp_web_1, myapp_db_1' in result.output
    assert 'Volumes: myapp_data' in result.output


def test_deploy_invalid_name(fake, compose_file):
    result = run(fake, ['deploy', 'MyApp', '-f', compose_file])
    assert result.exit_code == 1
    assert 'Invalid stack name' in result.output
    assert fake.calls == []


def test_deploy_failure_shows_suggestions(fake, compose_file):
    fake.fail_create['myapp_db_1'] = PlatformError("port is already allocated", platform_status=500)
    result = run(fake, ['deploy', 'myapp', '-f', compose_file])
    assert result.exit_code == 1
    assert 'Error: Failed to deploy stack: port is already allocated' in result.output
    assert '  - Check port availability' in result.output
    assert fake.containers == {}


def test_ls_and_inspect(fake, compose_file):
    run(fake, ['deploy', 'myapp', '-f', compose_file])

    result = run(fake, ['ls'])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0].split() == ['NAME', 'STATUS', 'SERVICES', 'CREATED']
    assert lines[2].split()[:3] == ['myapp', 'running', '2']

    result = run(fake, ['inspect', 'myapp'])
    assert result.exit_code == 0
    details = yaml.safe_load(result.output)
    assert details['name'] == 'myapp'
    assert details['containers'] == 2
    assert details['running'] == 2
    assert details['volumes'] == ['myapp_data']


def test_stop_and_rm(fake, compose_file):
    run(fake, ['deploy', 'myapp', '-f', compose_file])

    result = run(fake, ['stop', 'myapp'])
    assert result.exit_code == 0
    assert "Stack 'myapp' stopped." in result.output
    assert all(c.state == 'exited' for c in fake.containers.values())

    result = run(fake, ['rm', 'myapp', '--volumes'])
    assert result.exit_code == 0
    assert "Stack 'myapp' removed." in result.output
    assert fake.containers == {}
    assert fake.volumes == {}


def test_unknown_stack(fake):
    for args in (['inspect', 'ghost'], ['stop', 'ghost'], ['rm', 'ghost']):
        result = run(fake, args)
        assert result.exit_code == 1
        assert 'Error: Stack not found: ghost' in result.output


def test_bad_engine_setting(fake, monkeypatch):
    monkeypatch.setenv('STACKDEPLOY_TIMEOUT', 'soon')
    result = run(fake, ['ls'])
    assert result.exit_code == 1
    assert 'Invalid engine configuration' in result.output
