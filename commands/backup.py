"""
Mapping backup and restore commands.

A backup is a JSON document {version, created_at, mappings}. Restoring
either replaces the whole mapping set or merges into it by external id.
"""

import json

import click

from commands.helpers import get_config, get_config_file
from core.config import mappings_from_config, save_mappings
from models.mapping import IMPORT_MODES, export_mappings, import_mappings


@click.command(name='export-mappings')
@click.argument('output', type=click.Path(dir_okay=False, writable=True), required=False)
@click.option('--legacy-keys', is_flag=True,
              help='Write loxone_id/hue_id/hue_type so older gateway versions can read the file')
@click.pass_context
def export_mappings_command(ctx, output: str | None, legacy_keys: bool):
    """Write all mappings to a backup file (or stdout).

    Entries use external_id/resource_id/resource_type. Older gateway
    versions only read loxone_id/hue_id/hue_type; pass --legacy-keys when
    the file is meant for one of them. import-mappings reads both.

    \b
    Examples:
      loxone-hue export-mappings mappings-backup.json
      loxone-hue export-mappings > mappings-backup.json
      loxone-hue export-mappings --legacy-keys old-gateway.json
    """
    config = get_config(ctx, env_overrides=False)
    mappings = mappings_from_config(config)
    document = export_mappings(mappings, legacy=legacy_keys)
    text = json.dumps(document, indent=2)

    if output is None:
        click.echo(text)
        return

    with open(output, 'w') as f:
        f.write(text + '\n')
    click.secho(f"✓ Exported {len(mappings)} mappings to {output}", fg='green', err=True)


@click.command(name='import-mappings')
@click.argument('source', type=click.File('r'))
@click.option('--mode', type=click.Choice(IMPORT_MODES), default='merge', show_default=True,
              help='replace: backup becomes the mapping set; merge: update by external id')
@click.option('--dry-run', is_flag=True, help='Show what would change without saving')
@click.option('--yes', '-y', is_flag=True, help='Do not ask before replacing existing mappings')
@click.pass_context
def import_mappings_command(ctx, source, mode: str, dry_run: bool, yes: bool):
    """Restore mappings from a backup file ('-' reads stdin).

    \b
    Examples:
      loxone-hue import-mappings mappings-backup.json
      loxone-hue import-mappings mappings-backup.json --mode replace
    """
    try:
        backup = json.load(source)
    except ValueError as e:
        raise click.ClickException(f"Invalid backup file: {e}")

    config = get_config(ctx, env_overrides=False)
    existing = mappings_from_config(config)

    try:
        mappings, stats = import_mappings(existing, backup, mode)
    except ValueError as e:
        raise click.ClickException(f"Import rejected: {e}")

    if mode == 'replace' and existing and not dry_run and not yes:
        if not click.confirm(f"Replace {len(existing)} existing mappings?", default=False):
            click.echo("Import cancelled.")
            return

    if not dry_run:
        save_mappings(config, mappings, get_config_file(ctx))

    prefix = "Would import" if dry_run else "✓ Imported"
    click.secho(f"{prefix} {stats['imported']} new, {stats['updated']} updated "
                f"({stats['total']} total, mode: {mode})", fg='green')
    click.echo()
