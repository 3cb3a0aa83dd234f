"""
Rudimentary logins: from kubeconfig files, and from the in-cluster service account.

Only the basic credentials are extracted: the server, the TLS material,
the token or the username & password. The tokens of the auth-providers
and exec-plugins are retrieved by running their commands once, at login.
There is no re-authentication when the tokens expire: re-login instead.

.. seealso::
    :mod:`kubewire._cogs.structs.credentials`.
"""
import json
import logging
import os
import re
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from typing import Any

import yaml

from kubewire._cogs.structs import credentials, dicts

logger = logging.getLogger(__name__)

DEFAULT_KUBECONFIG = '~/.kube/config'
SERVICE_ACCOUNT_DIR = 'var/run/secrets/kubernetes.io/serviceaccount'

# A part of a token key: ".name", "[0]", or "['name']" (or with double quotes).
_TOKEN_KEY_PART = re.compile(r"\.([^.\[\]]+)|\[(\d+)\]|\[['\"]([^'\"]*)['\"]\]")


def login_with_kubeconfig(
        paths: str | Sequence[str] | None = None,
        *,
        context: str | None = None,
        server: str | None = None,
) -> credentials.ConnectionInfo:
    """
    A minimalistic login from the kubeconfig files.

    The files are taken from the arguments, or from ``$KUBECONFIG``
    (a list of paths), or from the default location, in that order.
    If several files are used, the first value found wins for every
    context, cluster, user, and the current context.
    """

    # As per https://kubernetes.io/docs/concepts/configuration/organize-cluster-access-kubeconfig/
    if paths is None:
        kubeconfig = os.environ.get('KUBECONFIG')
        if not kubeconfig and os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG)):
            kubeconfig = DEFAULT_KUBECONFIG
        if not kubeconfig:
            raise credentials.ConfigurationError("No kubeconfig: neither $KUBECONFIG is set, "
                                                 f"nor {DEFAULT_KUBECONFIG} exists.")
        paths = kubeconfig.split(os.pathsep)
    elif isinstance(paths, str):
        paths = paths.split(os.pathsep)
    paths = [os.path.expanduser(path.strip()) for path in paths if path.strip()]

    # As prescribed: if the file is absent or non-deserialisable, then fail. The first value wins.
    current_context: str | None = None
    contexts: dict[Any, Any] = {}
    clusters: dict[Any, Any] = {}
    users: dict[Any, Any] = {}
    for path in paths:
        try:
            with open(path, encoding='utf-8') as f:
                config = yaml.safe_load(f.read()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise credentials.ConfigurationError(f"Cannot read the kubeconfig {path!r}: {e}") from e

        if current_context is None:
            current_context = config.get('current-context')
        for item in config.get('contexts') or []:
            if item['name'] not in contexts:
                contexts[item['name']] = item.get('context') or {}
        for item in config.get('clusters') or []:
            if item['name'] not in clusters:
                clusters[item['name']] = item.get('cluster') or {}
        for item in config.get('users') or []:
            if item['name'] not in users:
                users[item['name']] = item.get('user') or {}

    # Once fully parsed, use the requested or current context only.
    context_name = context or current_context
    if context_name is None:
        raise credentials.LoginError('Current context is not set in kubeconfigs.')
    try:
        ctx = contexts[context_name]
        cluster = clusters[ctx.get('cluster')]
        user = users.get(ctx.get('user'), {})
    except KeyError as e:
        raise credentials.LoginError(f"Context {context_name!r} is incomplete: {e} is missing.") from e

    server = server or cluster.get('server')
    if not server:
        raise credentials.LoginError(f"Context {context_name!r} has no server.")

    token = user.get('token')
    if not token and user.get('tokenFile'):
        with open(os.path.expanduser(user['tokenFile']), encoding='utf-8') as f:
            token = f.read().strip()
    if not token and (user.get('auth-provider') or {}).get('config'):
        logger.debug(f"Using the auth-provider {user['auth-provider'].get('name')!r}.")
        token = token_from_auth_provider(user['auth-provider']['config'])
    if not token and user.get('exec'):
        logger.debug(f"Using the exec-plugin {user['exec'].get('command')!r}.")
        token = token_from_exec(user['exec'])

    # Map the retrieved fields into the credentials object.
    return credentials.ConnectionInfo(
        server=server,
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=token or None,
        default_namespace=ctx.get('namespace'),
    )


def login_with_service_account() -> credentials.ConnectionInfo:
    """
    A minimalistic login from the pod's service account.

    The API server is found by the environment variables of the cluster.
    The token and the CA are read from the mounted service account secret
    (under ``$TELEPRESENCE_ROOT`` when running in a Telepresence shell).
    """
    host = os.environ.get('KUBERNETES_SERVICE_HOST', '')
    if not host:
        raise credentials.ConfigurationError("KUBERNETES_SERVICE_HOST environment is not set.")
    port = os.environ.get('KUBERNETES_SERVICE_PORT_HTTPS', '')
    if not port:
        raise credentials.ConfigurationError("KUBERNETES_SERVICE_PORT_HTTPS environment is not set.")
    host = f'[{host}]' if ':' in host else host

    root = os.environ.get('TELEPRESENCE_ROOT') or '/'
    token_path = os.path.join(root, SERVICE_ACCOUNT_DIR, 'token')
    ns_path = os.path.join(root, SERVICE_ACCOUNT_DIR, 'namespace')
    ca_path = os.path.join(root, SERVICE_ACCOUNT_DIR, 'ca.crt')

    try:
        with open(token_path, encoding='utf-8') as f:
            token = f.read().strip()
    except OSError as e:
        raise credentials.ConfigurationError(f"Cannot read the service account token: {e}") from e

    namespace: str | None = None
    if os.path.exists(ns_path):
        with open(ns_path, encoding='utf-8') as f:
            namespace = f.read().strip()

    return credentials.ConnectionInfo(
        server=f'https://{host}:{port}',
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token or None,
        default_namespace=namespace or None,
    )


def token_from_auth_provider(config: Mapping[str, Any]) -> str | None:
    """
    Get the token of an auth-provider: the cached one, or from its command.

    The command's output is either the token itself, or a JSON document,
    where the token is found by the ``token-key`` (e.g. ``{.credential.token}``).
    """
    if config.get('id-token'):
        return str(config['id-token'])
    elif config.get('cmd-path'):
        command = [config['cmd-path'], *shlex.split(config.get('cmd-args') or '')]
        output = _run(command)
        token_key = config.get('token-key')
        if not token_key:
            return output.strip()
        try:
            data = json.loads(output)
        except ValueError as e:
            raise credentials.LoginError(f"The auth-provider's output is not JSON: {e}") from e
        field = parse_token_key(token_key)
        token = dicts.resolve(data, field, None) if isinstance(data, Mapping) else None
        if not token:
            raise credentials.LoginError(f"The auth-provider's output has no {token_key}.")
        return str(token)
    elif config.get('access-token'):
        return str(config['access-token'])
    else:
        return None


def parse_token_key(token_key: str) -> dicts.FieldPath:
    """
    Parse a JSONPath-like token key into a field path.

    Only the subset used by the auth-providers is supported: the dotted keys,
    the indices, and the quoted keys, e.g. ``{.items[0]['a.b'].token}``.
    """
    expression = token_key.strip().removeprefix('{').removesuffix('}').strip()
    expression = expression.removeprefix('$')
    expression = expression if expression.startswith(('.', '[')) else f'.{expression}'
    field: list[str | int] = []
    position = 0
    while position < len(expression):
        match = _TOKEN_KEY_PART.match(expression, position)
        if match is None:
            raise credentials.LoginError(f"Unsupported token key: {token_key!r}")
        name, index, quoted = match.groups()
        field.append(int(index) if index is not None else quoted if quoted is not None else name)
        position = match.end()
    return tuple(field)


def token_from_exec(config: Mapping[str, Any]) -> str:
    """
    Get the token of an exec-plugin by running its command.

    The extra environment variables are given only to the plugin's process.
    """
    command = [config['command'], *(config.get('args') or [])]
    env = dict(os.environ)
    env.update({item['name']: item['value'] for item in config.get('env') or []})
    output = _run(command, env=env)
    try:
        data = json.loads(output)
    except ValueError as e:
        raise credentials.LoginError(f"The exec-plugin's output is not JSON: {e}") from e
    token = dicts.resolve(data, 'status.token', None) if isinstance(data, Mapping) else None
    if not token:
        raise credentials.LoginError("The exec-plugin's output has no status.token.")
    return str(token)


def _run(command: Sequence[str], *, env: Mapping[str, str] | None = None) -> str:
    try:
        result = subprocess.run(command, capture_output=True, text=True, check=True, env=env)
    except (OSError, subprocess.CalledProcessError) as e:
        raise credentials.LoginError(f"The credentials command {command[0]!r} failed: {e}") from e
    return result.stdout
