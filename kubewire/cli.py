import asyncio
import dataclasses
import functools
import json
from collections.abc import Callable, Collection
from typing import Any

import click

from kubewire._cogs.clients import codecs, errors, login, transport
from kubewire._cogs.configs import configuration
from kubewire._cogs.helpers import loggers
from kubewire._cogs.structs import credentials, resources


@dataclasses.dataclass()
class CLIControls:
    """ Controls, which are impossible to pass via CLI. """
    settings: configuration.ClientSettings | None = None


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: bool | None = False,
                log_refkey: str | None = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


def connection_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to log in the same way in all commands, and to pass the connection info."""
    @click.option('--kubeconfig', type=str, default=None)
    @click.option('--context', type=str, default=None)
    @click.option('--server', type=str, default=None)
    @click.option('--in-cluster', is_flag=True)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(kubeconfig: str | None, context: str | None, server: str | None, in_cluster: bool,
                *args: Any, **kwargs: Any) -> Any:
        try:
            if in_cluster:
                info = login.login_with_service_account()
            else:
                info = login.login_with_kubeconfig(kubeconfig, context=context, server=server)
        except credentials.ConfigurationError as e:
            raise click.ClickException(str(e)) from e
        return fn(*args, info=info, **kwargs)

    return wrapper


@click.version_option(prog_name='kubewire')
@click.group(name='kubewire', context_settings=dict(
    auto_envvar_prefix='KUBEWIRE',
))
def main() -> None:
    pass


@main.command()
@logging_options
@connection_options
@click.make_pass_decorator(CLIControls, ensure=True)
def version(
        __controls: CLIControls,
        info: credentials.ConnectionInfo,
) -> None:
    """ Show the version of the API server. """
    result = _run(_version(info, settings=__controls.settings))
    click.echo(json.dumps(result, indent=2))


@main.command()
@logging_options
@connection_options
@click.option('--skip-missing', is_flag=True)
@click.option('--skip-forbidden', is_flag=True)
@click.argument('paths', nargs=-1, required=True)
@click.make_pass_decorator(CLIControls, ensure=True)
def get(
        __controls: CLIControls,
        info: credentials.ConnectionInfo,
        paths: Collection[str],
        skip_missing: bool,
        skip_forbidden: bool,
) -> None:
    """ Get one or several objects by their paths at once. """
    result = _run(_get(info, paths,
                       skip_missing=skip_missing,
                       skip_forbidden=skip_forbidden,
                       settings=__controls.settings))
    click.echo(json.dumps(result, indent=2))


@main.command()
@logging_options
@connection_options
@click.option('-c', '--container', type=str, default=None)
@click.option('-f', '--follow', is_flag=True)
@click.option('--tail', 'tail_lines', type=int, default=None)
@click.argument('namespace')
@click.argument('pod')
@click.make_pass_decorator(CLIControls, ensure=True)
def logs(
        __controls: CLIControls,
        info: credentials.ConnectionInfo,
        namespace: str,
        pod: str,
        container: str | None,
        follow: bool,
        tail_lines: int | None,
) -> None:
    """ Print the logs of a pod. """
    _run(_logs(info, namespace, pod,
               container=container,
               follow=follow,
               tail_lines=tail_lines,
               settings=__controls.settings))


@main.command()
@logging_options
@connection_options
@click.option('--dry-run/--no-dry-run', default=True)
@click.argument('path')
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
@click.make_pass_decorator(CLIControls, ensure=True)
def apply(
        __controls: CLIControls,
        info: credentials.ConnectionInfo,
        path: str,
        file: str,
        dry_run: bool,
) -> None:
    """
    Apply the object from a file to the existing object at a path.

    Prints the JSON patch from the last applied configuration to the new one,
    or the full replacement if the existing object was never applied.
    The changes are sent to the server only with ``--no-dry-run``.
    """
    body = _run(_apply(info, path, file, dry_run=dry_run, settings=__controls.settings))
    click.echo(json.dumps(body, indent=2))


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except errors.APIError as e:
        raise click.ClickException(str(e)) from e


async def _version(
        info: credentials.ConnectionInfo,
        *,
        settings: configuration.ClientSettings | None,
) -> Any:
    async with transport.Transport(info, settings=settings) as api:
        return dict(await api.version())


async def _get(
        info: credentials.ConnectionInfo,
        paths: Collection[str],
        *,
        skip_missing: bool,
        skip_forbidden: bool,
        settings: configuration.ClientSettings | None,
) -> Any:
    async with transport.Transport(info, settings=settings) as api:
        return await api.get_many(*paths, skip_missing=skip_missing, skip_forbidden=skip_forbidden)


async def _logs(
        info: credentials.ConnectionInfo,
        namespace: str,
        pod: str,
        *,
        container: str | None,
        follow: bool,
        tail_lines: int | None,
        settings: configuration.ClientSettings | None,
) -> None:
    stdout = click.get_binary_stream('stdout')

    def write(chunk: bytes) -> None:
        stdout.write(chunk)
        stdout.flush()

    async with transport.Transport(info, settings=settings) as api:
        await api.read_logs(namespace, pod, on_chunk=write,
                            container=container, follow=follow, tail_lines=tail_lines)


async def _apply(
        info: credentials.ConnectionInfo,
        path: str,
        file: str,
        *,
        dry_run: bool,
        settings: configuration.ClientSettings | None,
) -> Any:
    desired = resources.Resource.from_file(file)
    last_applied = desired.to_json()
    async with transport.Transport(info, settings=settings) as api:
        live: resources.Resource = await api.get(path, response_type=resources.Resource)

        if live.can_patch():
            annotation = resources.LAST_APPLIED_ANNOTATION.replace('~', '~0').replace('/', '~1')
            patch: list[Any] = list(live.diff(desired))
            patch.append({'op': 'add', 'path': f'/metadata/annotations/{annotation}',
                          'value': last_applied})
            if dry_run:
                return patch
            result = await api.patch(path, payload=patch, content_type=codecs.JSON_PATCH,
                                     response_type=resources.Resource)
        else:
            metadata: dict[str, Any] = {
                'annotations': {resources.LAST_APPLIED_ANNOTATION: last_applied},
            }
            if live.get_field('metadata.resourceVersion', None):
                metadata['resourceVersion'] = live.get_field('metadata.resourceVersion')
            replacement = desired.merge({'metadata': metadata})
            if dry_run:
                return replacement.to_dict()
            result = await api.put(path, payload=replacement.to_dict(),
                                   response_type=resources.Resource)
        return result.to_dict()
