"""Mailbox runtime CLI: classify servers and check account connections."""

import sys

import click
from imapclient.exceptions import IMAPClientError

from mailbox_runtime import __version__
from mailbox_runtime.adapters import default_registry
from mailbox_runtime.classification.classifier import ImapClassifier
from mailbox_runtime.classification.vendors import VendorRegistry
from mailbox_runtime.connection.pool import ConnectionPool
from mailbox_runtime.errors import AdapterNotFound, MailboxRuntimeError
from mailbox_runtime.lib.config import classification_config, connection_config
from mailbox_runtime.lib.logger import get_logger
from mailbox_runtime.models import ConnectionSpecification, Credentials, ListCommand, ServerConfig
from mailbox_runtime.storage.credentials import CredentialStorage

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="mailbox-runtime")
def cli():
    """Mailbox Runtime - IMAP connection and server classification tool."""
    pass


@cli.command()
@click.argument("host")
@click.option("--port", type=int, default=None, help="Server port (default: 993, or 143 with --no-ssl)")
@click.option("--no-ssl", is_flag=True, help="Connect without implicit TLS")
def classify(host, port, no_ssl):
    """Probe HOST and show which adapter would serve it."""
    click.echo(f"Classifying {host}")
    click.echo("=" * (12 + len(host)))

    try:
        config = ServerConfig(host=host, port=port, use_ssl=not no_ssl)
        classifier = ImapClassifier.from_config(classification_config)
        registry = default_registry()

        result = classifier.classify_server(config)
        if result is None:
            click.echo("✗ No vendor recognised")
            click.echo(f"  Adapter: {registry.default.__name__} (default)")
            return

        try:
            adapter_class = registry.retrieve(result.vendor)
        except AdapterNotFound:
            adapter_class = registry.default

        click.echo(f"✓ Vendor: {result.vendor}")
        click.echo(f"  Method: {result.method.value}")
        if result.distance is not None:
            click.echo(f"  Distance: {result.distance}")
        click.echo(f"  Adapter: {adapter_class.__name__}")

    except (MailboxRuntimeError, ValueError) as e:
        click.echo(f"✗ Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("host")
@click.option("--user", required=True, help="Account user name")
@click.option("--adapter", "adapter_name", default=None, help="Adapter name (default: classify the server)")
@click.option("--port", type=int, default=None, help="Server port (default: 993, or 143 with --no-ssl)")
@click.option("--no-ssl", is_flag=True, help="Connect without implicit TLS")
@click.option("--timeout", type=float, default=30.0, show_default=True, help="Command timeout in seconds")
@click.option("--save-password", is_flag=True, help="Store the prompted password in the system keyring")
def check(host, user, adapter_name, port, no_ssl, timeout, save_password):
    """Connect to HOST as USER and list capabilities and folders."""
    click.echo(f"Checking {user} at {host}")
    click.echo("=" * (13 + len(user) + len(host)))

    storage = CredentialStorage()
    credentials = storage.retrieve(user)
    if credentials is None:
        password = click.prompt("Password", hide_input=True)
        credentials = Credentials(user, password)
        if save_password and storage.store(user, password):
            click.echo("  Password saved securely in system keyring")

    pool = ConnectionPool(connection_config)
    try:
        config = ServerConfig(
            host=host,
            port=port,
            use_ssl=not no_ssl,
            credentials=credentials,
            timeout=connection_config.socket_timeout,
        )
        classifier = None if adapter_name else ImapClassifier.from_config(classification_config)
        specification = ConnectionSpecification.resolve(config, default_registry(), classifier, adapter_name)
        click.echo(f"Adapter: {specification.adapter_class.__name__}")

        pool.establish(user, specification)
        click.echo("✓ Connected and authenticated")

        capabilities = pool.with_connection(user, None, lambda a: a.capabilities.names())
        delimiter = pool.with_connection(user, None, lambda a: a.delimiter)
        folders = pool.with_connection(user, timeout, lambda a: a.folder_retrieve(ListCommand()))

        click.echo(f"\nCapabilities: {' '.join(capabilities)}")
        click.echo(f"Delimiter: {delimiter!r}")
        click.echo(f"\nFolders ({len(folders)}):")
        for entry in folders:
            flags = ", ".join(sorted(a.value for a in entry.attributes))
            click.echo(f"  {entry.name}" + (f"  [{flags}]" if flags else ""))

    except (MailboxRuntimeError, IMAPClientError, OSError, ValueError) as e:
        click.echo(f"✗ Check failed: {e}", err=True)
        logger.error(f"Connection check for {user} at {host} failed: {e}")
        sys.exit(1)

    finally:
        if pool.has_handler(user):
            pool.disconnect(user)


@cli.command()
def vendors():
    """List the vendors the classifier knows."""
    click.echo("Known Vendors")
    click.echo("=============")

    try:
        registry = VendorRegistry.from_yaml(classification_config.vendor_file)
    except MailboxRuntimeError as e:
        click.echo(f"✗ Error: {e}", err=True)
        sys.exit(1)

    for vendor in registry.vendors():
        click.echo(
            f"{vendor}: {len(registry.hosts(vendor))} host(s), "
            f"{len(registry.fingerprints(vendor))} fingerprint(s)"
        )


if __name__ == "__main__":
    cli()
