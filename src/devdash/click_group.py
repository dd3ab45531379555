"""Click group that reports usage errors with devdash hints.

A usage error prints the error, then what the user most likely needs next:
close matches for a mistyped command, the accepted values of a choice
option, and the ``--help`` invocation of the command that failed.
"""

import difflib
from typing import Any

import click


def usage_hints(ctx: click.Context, error: click.UsageError) -> list[str]:
    """Hint lines for a usage error raised while running ``ctx``'s command."""
    hints = []
    param = getattr(error, "param", None)
    if param is not None and isinstance(param.type, click.Choice):
        choices = ", ".join(str(choice) for choice in param.type.choices)
        hints.append(f"Valid values for {param.get_error_hint(ctx)}: {choices}")
    hints.append(f"Run '{ctx.command_path} --help' for usage.")
    return hints


def report_usage_error(ctx: click.Context, error: click.UsageError) -> None:
    """Print a usage error with hints and exit with the error's exit code."""
    error_ctx = error.ctx or ctx
    click.echo(f"Error: {error.format_message()}", err=True)
    click.echo(error_ctx.get_usage(), err=True)
    for hint in usage_hints(error_ctx, error):
        click.echo(hint, err=True)
    error_ctx.exit(error.exit_code)


class DevdashGroup(click.Group):
    """Group whose subcommands report usage errors with hints."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except click.UsageError as e:
            report_usage_error(ctx, e)
            return None

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        """Resolve a subcommand, suggesting close matches for unknown names."""
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError as e:
            # Parameter errors are reported by invoke()
            if isinstance(e, click.BadParameter):
                raise
            commands = self.list_commands(ctx)
            click.echo(f"Error: {e.format_message()}", err=True)
            matches = difflib.get_close_matches(args[0] if args else "", commands, n=3)
            if matches:
                click.echo(f"Did you mean: {', '.join(matches)}?", err=True)
            click.echo(f"Commands: {', '.join(commands)}", err=True)
            click.echo(f"Run '{ctx.command_path} --help' for usage.", err=True)
            ctx.exit(2)
            return None, None, []


# Subgroups created with @main.group() also use DevdashGroup
DevdashGroup.group_class = DevdashGroup


__all__ = ["DevdashGroup", "report_usage_error", "usage_hints"]
