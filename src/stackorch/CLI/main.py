"""
Command Line Interface for StackOrch.
"""
import logging
import sys
import click
from ..CONFIG.settings import load_settings
from ..MANAGERS.service_manager import ServiceManager
from ..MODELS.service_definition import ExposedPort, ServiceDescriptor
from ..UTILS.environment import load_env_file, merge_environments
from ..exceptions import StackOrchError


def _parse_env(pairs):
    """
    Turns repeated ``-e KEY=VALUE`` options into an Environment.
    """
    env = {}
    for pair in pairs:
        if '=' not in pair:
            raise click.BadParameter(f"'{pair}' is not KEY=VALUE", param_hint='-e/--env')
        key, value = pair.split('=', 1)
        env[key] = value
    return env


def _parse_port(value):
    """
    Parses ``[address:]host:container[/protocol]`` or ``container[/protocol]``.
    """
    protocol = 'tcp'
    if '/' in value:
        value, protocol = value.rsplit('/', 1)
    parts = value.split(':')
    if len(parts) == 1:
        return ExposedPort(container_port=parts[0], protocol=protocol)
    if len(parts) == 2:
        return ExposedPort(host_port=parts[0], container_port=parts[1], protocol=protocol)
    if len(parts) == 3:
        return ExposedPort(address=parts[0], host_port=parts[1], container_port=parts[2], protocol=protocol)
    raise click.BadParameter(f"'{value}' is not a valid port", param_hint='-p/--port')


def _environment(ctx, pairs):
    return merge_environments(ctx.obj['env'], _parse_env(pairs))


def _fail(e):
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


env_option = click.option('--env', '-e', 'env_pairs', multiple=True, help='KEY=VALUE passed to compose (repeatable)')
service_option = click.option('--service', 'is_service', is_flag=True,
                              help='Treat the first name as a standalone service instead of a profile')


@click.group()
@click.option('--workspace', '-w', default=None, help='Workspace holding descriptors and state')
@click.option('--env-file', default=None, type=click.Path(exists=True, dir_okay=False),
              help='.env file with variables for compose')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, workspace, env_file, verbose):
    """
    StackOrch - compose topology orchestrator.

    Start services, attach more to a running profile, and tear everything
    down with the same environment it was started with.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    try:
        settings = load_settings(overrides={'workspace': workspace})
        ctx.obj['env'] = load_env_file(env_file) if env_file else {}
    except StackOrchError as e:
        _fail(e)
    if 'manager' not in ctx.obj:
        ctx.obj['manager'] = ServiceManager(settings)


@cli.command()
@click.argument('names', nargs=-1, required=True)
@service_option
@env_option
@click.pass_context
def up(ctx, names, is_service, env_pairs):
    """Start services defined by a profile and its components."""
    try:
        ctx.obj['manager'].run_compose(not is_service, list(names), _environment(ctx, env_pairs))
    except StackOrchError as e:
        _fail(e)
    click.echo("Services started.")


@cli.command()
@click.argument('names', nargs=-1, required=True)
@service_option
@click.pass_context
def down(ctx, names, is_service):
    """Stop a topology and forget its state."""
    try:
        ctx.obj['manager'].stop_compose(not is_service, list(names))
    except StackOrchError as e:
        _fail(e)
    click.echo("Services stopped.")


@cli.command()
@click.argument('profile')
@click.argument('services', nargs=-1, required=True)
@click.option('--file', '-f', 'compose_file', default=None, help='Descriptor filename for the profile')
@env_option
@click.pass_context
def add(ctx, profile, services, compose_file, env_pairs):
    """Add services to a running profile."""
    filenames = [compose_file] if compose_file else []
    try:
        ctx.obj['manager'].add_services_to_compose(profile, list(services), _environment(ctx, env_pairs),
                                                   *filenames)
    except StackOrchError as e:
        _fail(e)
    click.echo(f"Added {', '.join(services)} to {profile}.")


@cli.command()
@click.argument('profile')
@click.argument('services', nargs=-1, required=True)
@env_option
@click.pass_context
def remove(ctx, profile, services, env_pairs):
    """Remove services from a running profile."""
    try:
        ctx.obj['manager'].remove_services_from_compose(profile, list(services), _environment(ctx, env_pairs))
    except StackOrchError as e:
        _fail(e)
    click.echo(f"Removed {', '.join(services)} from {profile}.")


@cli.command(name='exec', context_settings={'ignore_unknown_options': True})
@click.argument('profile')
@click.argument('component')
@click.argument('service')
@click.argument('cmds', nargs=-1, required=True, type=click.UNPROCESSED)
@click.option('--detach', '-d', is_flag=True, help='Run the command in the background')
@env_option
@click.pass_context
def exec_(ctx, profile, component, service, cmds, detach, env_pairs):
    """Execute a command in a service container."""
    try:
        result = ctx.obj['manager'].exec_command_in_service(
            profile, component, service, list(cmds), _environment(ctx, env_pairs), detach)
    except StackOrchError as e:
        _fail(e)
    if result.stdout:
        click.echo(result.stdout, nl=False)


@cli.command()
@click.argument('profile')
@click.argument('service')
@click.pass_context
def logs(ctx, profile, service):
    """Print the logs of a service attached to a profile."""
    try:
        result = ctx.obj['manager'].run_command([profile, service], ['logs', service], ctx.obj['env'])
    except StackOrchError as e:
        _fail(e)
    click.echo(result.stdout, nl=False)


@cli.command()
@click.argument('names', nargs=-1, required=True)
@service_option
@env_option
@click.pass_context
def config(ctx, names, is_service, env_pairs):
    """Show the merged services of a descriptor set."""
    manager = ctx.obj['manager']
    try:
        topology = manager.describe(not is_service, list(names), _environment(ctx, env_pairs))
    except (StackOrchError, OSError, ValueError) as e:
        _fail(e)
    click.echo(f"{'SERVICE':20} {'IMAGE':30} PORTS")
    click.echo("-" * 60)
    for name, service in topology.services.items():
        click.echo(f"{name:20} {service.image_name:30} {', '.join(service.ports)}")


@cli.command()
@click.argument('name')
@service_option
@click.pass_context
def state(ctx, name, is_service):
    """Show what was last applied for a topology."""
    try:
        record = ctx.obj['manager'].state(not is_service, name)
    except StackOrchError as e:
        _fail(e)
    if record is None:
        click.echo(f"No state recorded for {name}.")
        return
    click.echo(f"Identity: {record.identity}")
    click.echo("Descriptors:")
    for path in record.descriptor_paths:
        click.echo(f"  {path}")
    click.echo("Environment:")
    for key in sorted(record.environment):
        click.echo(f"  {key}")


@cli.command()
@click.argument('image')
@click.option('--port', '-p', 'ports', multiple=True, help='[address:]host:container[/protocol]')
@click.option('--daemon', is_flag=True, help='Keep the container after it stops')
@click.pass_context
def run(ctx, image, ports, daemon):
    """Run a standalone service container."""
    service = ServiceDescriptor(image_tag=image, exposed_ports=[_parse_port(p) for p in ports])
    if daemon:
        service.as_daemon()
    try:
        container = ctx.obj['manager'].run(service)
    except StackOrchError as e:
        _fail(e)
    click.echo(container.container_id)


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})

if __name__ == '__main__':
    main()
