"""npm package name validation."""

import re

from .errors import InvalidPackageName

MAX_NAME_LENGTH = 214

# Names npm refuses because they clash with Node builtins or reserved paths
INVALID_NAMES = frozenset({
    "node_modules", "favicon.ico", "assert", "async_hooks", "buffer",
    "child_process", "cluster", "console", "constants", "crypto", "dgram",
    "dns", "domain", "events", "fs", "http", "http2", "https", "inspector",
    "module", "net", "os", "path", "perf_hooks", "process", "punycode",
    "querystring", "readline", "repl", "stream", "string_decoder", "timers",
    "tls", "trace_events", "tty", "url", "util", "v8", "vm", "wasi",
    "worker_threads", "zlib",
})

_NAME_CHARS = re.compile(r"^[a-z0-9_.\-]+$")


def validate_package_name(name: str) -> str:
    """Return ``name`` unchanged if npm would accept it.

    Raises:
        InvalidPackageName: If the name is empty, too long, has characters
            outside ``[a-z0-9._-]``, starts with ``.`` or ``_``, or is a
            reserved builtin name.
    """
    if not name or len(name) > MAX_NAME_LENGTH:
        raise InvalidPackageName(name)
    if name[0] in "._":
        raise InvalidPackageName(name)

    if name.startswith("@"):
        scope, sep, bare = name[1:].partition("/")
        if not sep or not scope or not bare:
            raise InvalidPackageName(name)
        if not _NAME_CHARS.match(scope) or not _NAME_CHARS.match(bare):
            raise InvalidPackageName(name)
        return name

    if not _NAME_CHARS.match(name) or name in INVALID_NAMES:
        raise InvalidPackageName(name)
    return name


def split_spec(token: str) -> tuple[str, str | None]:
    """Split ``name@version`` into name and version, scope-aware.

    ``@scope/pkg@1.2.3`` -> (``@scope/pkg``, ``1.2.3``); ``lodash`` -> (``lodash``, None).
    """
    token = token.strip()
    at = token.rfind("@")
    if at <= 0:
        return token, None
    version = token[at + 1:].strip()
    return token[:at], version or None
