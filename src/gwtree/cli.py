"""Command-line interface for gwtree."""

import logging
from collections.abc import Callable

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .commands import Commands
from .config import ConfigStore
from .exceptions import GwtreeError
from .store import WorktreeStore

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
BANNER_KEY = "gwtree.banner"

GROUP_FLAGS = ("--debug",)
EAGER_FLAGS = ("-h", "--help", "-v", "--version")
YES_FLAGS = ("-y", "--yes")


def configure_logging(debug: bool) -> None:
    """Send gwtree's log records to stderr through rich."""
    package_logger = logging.getLogger("gwtree")
    package_logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)


class DefaultCommandGroup(click.Group):
    """Group with command aliases that routes every other word to ``create``.

    ``gwt foo bar -y`` creates worktrees ``foo`` and ``bar``; ``gwt st`` is
    ``gwt status``. The ``create`` command is hidden and its name is not
    reserved: ``gwt create`` creates a worktree called ``create``.
    """

    aliases = {"remove": "rm", "list": "ls", "st": "status", "c": "clean", "m": "merge"}
    default_command = "create"

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        return super().get_command(ctx, self.aliases.get(cmd_name, cmd_name))

    def resolve_command(self, ctx: click.Context, args: list[str]):
        _, cmd, rest = super().resolve_command(ctx, args)
        return cmd.name if cmd else None, cmd, rest

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        index = 0
        while index < len(args) and args[index] in GROUP_FLAGS:
            index += 1
        head, rest = list(args[:index]), list(args[index:])

        # "create" is hidden; the word itself is a worktree name like any other
        routed = not rest or (rest[0] not in EAGER_FLAGS and (
            rest[0] == self.default_command or self.get_command(ctx, rest[0]) is None))
        if routed:
            rest = [self.default_command, *rest]

        fast = routed and any(not a.startswith("-") for a in rest[1:]) and any(a in YES_FLAGS for a in rest)
        quiet = any(a in EAGER_FLAGS for a in rest) or rest[:1] in (["version"], ["help"])
        ctx.meta[BANNER_KEY] = not (fast or quiet)

        return super().parse_args(ctx, head + rest)


def _run(ctx: click.Context, handler: Callable, *args, **kwargs):
    """Call a handler, turning gwtree errors into a message and exit code."""
    commands: Commands = ctx.obj
    try:
        return handler(*args, **kwargs)
    except GwtreeError as e:
        commands.reporter.cancel(e.message)
        ctx.exit(e.exit_code)


@click.group(cls=DefaultCommandGroup, context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, "-v", "--version", message="%(version)s",
                      help="Output the version number")
@click.option("--debug", is_flag=True, envvar="GWT_DEBUG", help="Log git commands to stderr")
@click.pass_context
def main(ctx: click.Context, debug: bool) -> None:
    """Git worktree manager for parallel development.

    \b
    gwt [NAMES...] [-y] [-x]  create a worktree per name (prompted when none)
      -y, --yes                use defaults, skip prompts
      -x, --no-editor          skip opening the editor
    """
    configure_logging(debug)

    if ctx.obj is None:
        ctx.obj = Commands(ConfigStore(), WorktreeStore())

    if ctx.meta.get(BANNER_KEY, True):
        ctx.obj.reporter.banner()


@main.command(hidden=True)
@click.argument("names", nargs=-1)
@click.option("-y", "--yes", is_flag=True, help="Use saved defaults, skip prompts")
@click.option("-x", "--no-editor", is_flag=True, help="Skip opening editor")
@click.pass_context
def create(ctx: click.Context, names: tuple[str, ...], yes: bool, no_editor: bool) -> None:
    """Create new git worktree(s). gwt foo bar creates one per name."""
    commands: Commands = ctx.obj
    if len(names) > 1:
        _run(ctx, commands.create_batch, list(names), no_editor=no_editor)
    else:
        _run(ctx, commands.create, names[0] if names else None, yes=yes, no_editor=no_editor)


@main.command("rm")
@click.pass_context
def rm(ctx: click.Context) -> None:
    """Remove worktrees for current repo (alias: remove)."""
    _run(ctx, ctx.obj.remove)


@main.command("ls")
@click.pass_context
def ls(ctx: click.Context) -> None:
    """List worktrees for current repo (alias: list)."""
    _run(ctx, ctx.obj.list_worktrees)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show changes and commits ahead/behind per worktree (alias: st)."""
    _run(ctx, ctx.obj.status)


@main.command()
@click.option("-a", "--all", "remove_all", is_flag=True, help="Remove all worktrees (not just merged)")
@click.pass_context
def clean(ctx: click.Context, remove_all: bool) -> None:
    """Remove worktrees that have been merged to main (alias: c)."""
    _run(ctx, ctx.obj.clean, remove_all=remove_all)


@main.command()
@click.argument("name")
@click.pass_context
def merge(ctx: click.Context, name: str) -> None:
    """Merge worktree branch to main and remove worktree (alias: m)."""
    _run(ctx, ctx.obj.merge, name)


@main.command()
@click.argument("action", required=False)
@click.argument("args", nargs=-1)
@click.pass_context
def config(ctx: click.Context, action: str | None, args: tuple[str, ...]) -> None:
    """Open config file, or: reset | path | set KEY VALUE."""
    _run(ctx, ctx.obj.config, action, args)


@main.command()
def version() -> None:
    """Show version number."""
    click.echo(__version__)


@main.command("help")
@click.pass_context
def help_(ctx: click.Context) -> None:
    """Show help."""
    click.echo(ctx.parent.get_help())


if __name__ == '__main__':
    main()
