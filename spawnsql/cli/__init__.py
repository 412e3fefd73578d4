"""
spawn - SQL migration CLI.

The `spawn` command renders Jinja2 migration scripts against live or
pinned components and applies them through the database engine.

Usage:
    spawn migration new <name>
    spawn migration pin <migration>
    spawn migration build [--pinned] <migration>
    spawn migration apply [--pinned] [<migration>]
    spawn migration adopt <migration>
    spawn migration status
    spawn migration check
    spawn test new|build|run|expect <name>
    spawn test compare [<name>]
"""

from .. import __version__

__cli_name__ = "spawn"


def main():
    """Wrapper to avoid eager import of __main__ which causes warnings with -m."""
    from .__main__ import main as _main
    return _main()
