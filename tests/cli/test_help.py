import pytest


def test_help_in_root(invoke):
    result = invoke(['--help'])

    assert result.exit_code == 0
    assert 'Usage: kubewire [OPTIONS]' in result.output
    assert '  version ' in result.output
    assert '  get ' in result.output
    assert '  logs ' in result.output
    assert '  apply ' in result.output


@pytest.mark.parametrize('command', ['version', 'get', 'logs', 'apply'])
def test_help_in_subcommands(invoke, mocker, command):
    login = mocker.patch('kubewire._cogs.clients.login.login_with_kubeconfig')

    result = invoke([command, '--help'])

    assert result.exit_code == 0
    assert not login.called
    assert f'Usage: kubewire {command} [OPTIONS]' in result.output
    assert '  --kubeconfig' in result.output
    assert '  --in-cluster' in result.output
    assert '  --log-format' in result.output


def test_version_option(invoke):
    result = invoke(['--version'])
    assert result.exit_code == 0
    assert result.output.startswith('kubewire, version ')
