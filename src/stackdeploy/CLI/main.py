"""
Command Line Interface for stackdeploy.
"""
import functools

import click
import yaml

from ..exceptions import StackError
from ..MANAGERS.stack_service import StackService
from ..MODELS.engine_config import load_engine_config
from ..UTILS.logging_setup import configure_logging


def handle_errors(f):
    """
    Turns engine errors into a message, suggestions and exit status 1.
    """
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except StackError as e:
            click.echo(f"Error: {e.message}", err=True)
            for suggestion in e.suggestions:
                click.echo(f"  - {suggestion}", err=True)
            raise SystemExit(1)
    return wrapper


def _dump(data) -> str:
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


@click.group()
@click.option('--log-level', default=None, help='Log level (DEBUG, INFO, WARNING, ERROR)')
@click.option('--env-file', default=None, help='Read STACKDEPLOY_* settings from this .env file')
@click.pass_context
@handle_errors
def cli(ctx, log_level, env_file):
    """
    stackdeploy - deploy Compose files as labeled stacks.

    Every network, volume and container of a stack carries the stack's
    project label, so stacks can be listed, stopped and removed later.
    """
    ctx.ensure_object(dict)
    config = load_engine_config(env_file)
    if log_level:
        config = config.model_copy(update={'log_level': log_level.upper()})
    configure_logging(config.log_level)
    ctx.obj['config'] = config
    if 'service' not in ctx.obj:
        ctx.obj['service'] = StackService(platform=ctx.obj.get('platform'), config=config)


@cli.command()
@click.option('--file', '-f', 'compose_file', type=click.File('r'), default='docker-compose.yml',
              help='Compose file path ("-" for stdin)')
@click.pass_context
@handle_errors
def config(ctx, compose_file):
    """Validate a Compose file and print the parsed definition."""
    definition = ctx.obj['service'].parse(compose_file.read())
    click.echo(_dump(definition.model_dump(mode='json')), nl=False)


@cli.command()
@click.argument('name')
@click.option('--file', '-f', 'compose_file', type=click.File('r'), default='docker-compose.yml',
              help='Compose file path ("-" for stdin)')
@click.pass_context
@handle_errors
def deploy(ctx, name, compose_file):
    """Deploy a Compose file as stack NAME."""
    result = ctx.obj['service'].deploy(name, compose_file.read())
    click.echo(result.message)
    for label, items in (('Services', result.services), ('Networks', result.networks), ('Volumes', result.volumes)):
        if items:
            click.echo(f"{label}: {', '.join(items)}")


@cli.command(name='ls')
@click.pass_context
@handle_errors
def list_stacks(ctx):
    """List stacks and their status"""
    stacks = ctx.obj['service'].list()
    click.echo(f"{'NAME':20} {'STATUS':10} {'SERVICES':10} {'CREATED':20}")
    click.echo("-" * 62)
    for stack in stacks:
        created = stack.created_at.strftime('%Y-%m-%d %H:%M:%S') if stack.created_at else '-'
        click.echo(f"{stack.name:20} {stack.status.value:10} {len(stack.services):<10} {created:20}")


@cli.command()
@click.argument('name')
@click.pass_context
@handle_errors
def inspect(ctx, name):
    """Show details of stack NAME"""
    details = ctx.obj['service'].get_details(name)
    click.echo(_dump(details.model_dump(mode='json')), nl=False)


@cli.command()
@click.argument('name')
@click.pass_context
@handle_errors
def stop(ctx, name):
    """Stop all containers of stack NAME."""
    ctx.obj['service'].stop(name)
    click.echo(f"Stack '{name}' stopped.")


@cli.command(name='rm')
@click.argument('name')
@click.option('--volumes', '-v', is_flag=True, help='Also remove the stack\'s named volumes')
@click.pass_context
@handle_errors
def remove(ctx, name, volumes):
    """Remove stack NAME (containers and networks)."""
    ctx.obj['service'].remove(name, remove_volumes=volumes)
    click.echo(f"Stack '{name}' removed.")


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
