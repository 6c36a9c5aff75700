import click
from dotenv import load_dotenv

from ..handlers import register_builtin_handlers
from ..shared.exceptions import ConfigurationError
from . import main as app_main

_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR")


def _cmd_check(config_files: tuple[str, ...]) -> int:
    load_dotenv()
    configs = app_main.load_configs(config_files)
    registry = register_builtin_handlers()
    app_main.load_handler_files(configs, registry)
    for config in configs:
        model = config.model
        click.echo(f"{config.config_path}: {model.name} ({model.connection.jid})")
        for room in config.room_confs():
            state = "enabled" if room.enabled else "disabled"
            click.echo(
                f"  room {room.local}@{room.domain} as {room.nick or model.name} ({state})"
            )
            for handler in room.handlers:
                known = registry.get_class(handler.type) is not None
                flags = [] if handler.enabled else ["disabled"]
                if not known:
                    flags.append("unknown type")
                suffix = f" [{', '.join(flags)}]" if flags else ""
                click.echo(f"    {handler.id}: {handler.type}{suffix}")
        if model.rooms_dir:
            click.echo(f"  rooms directory: {model.rooms_dir}")
    return 0


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.pass_context
def app(ctx: click.Context) -> None:
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        raise click.exceptions.Exit(0)


@app.command()
@click.option(
    "-f",
    "--file",
    "config_files",
    multiple=True,
    required=True,
    type=click.Path(dir_okay=False),
    help="Bot configuration file (repeat to run several bots).",
)
@click.option("-d", "--debug", is_flag=True, help="Debug logging and stanza dumps.")
@click.option(
    "-l",
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default=None,
)
def run(config_files: tuple[str, ...], debug: bool, log_level: str | None) -> None:
    raise click.exceptions.Exit(
        app_main.main(config_files, debug=debug, log_level=log_level)
    )


@app.command()
@click.option(
    "-f",
    "--file",
    "config_files",
    multiple=True,
    required=True,
    type=click.Path(dir_okay=False),
)
def check(config_files: tuple[str, ...]) -> None:
    raise click.exceptions.Exit(_cmd_check(config_files))


def main() -> int:
    try:
        result = app.main(prog_name="mucbot", standalone_mode=False)
        return result if isinstance(result, int) else 0
    except click.exceptions.Exit as e:
        return int(e.exit_code)
    except click.exceptions.ClickException as e:
        e.show()
        return e.exit_code
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
