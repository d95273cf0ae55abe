import json

import click

from crudgate.cli.errors import handle_exceptions
from crudgate.database import get_session_factory
from crudgate.interface.permissions import Action
from crudgate.permissions.checker import PermissionChecker
from crudgate.permissions.store import SqlPolicyStore


def _checker():
  return PermissionChecker(SqlPolicyStore(get_session_factory()))


def _load(raw):
  return json.loads(raw) if raw else None


@click.command()
@handle_exceptions
def init_table():
  """Create the policy table if it is missing"""

  store = SqlPolicyStore(get_session_factory())
  store.create_table()
  click.echo(f"Policy table {store.table_name} is ready")


@click.command()
@click.argument("role_id")
@handle_exceptions
def list_policies(role_id):

  for p in _checker().get_policies_for_role(role_id):
    click.echo(f"{p.id}  {p.collection:<24} {Action(p.action).value:<7} filter={p.filter or '-'} fields={p.field_permissions or '-'} presets={p.presets or '-'}")


@click.command()
@click.argument("role_id")
@click.argument("collection")
@click.argument("action", type=click.Choice([a.value for a in Action]))
@click.option("--filter", "filter_json", default=None, help="Row filter tree as JSON.")
@click.option("--fields", "fields_json", default=None, help='Field permissions as JSON, e.g. {"denied": ["salary"]}.')
@click.option("--presets", "presets_json", default=None, help="Create presets as JSON.")
@handle_exceptions
def set_policy(role_id, collection, action, filter_json, fields_json, presets_json):

  policy = _checker().set_policy(
    role_id,
    collection,
    Action(action),
    filter=_load(filter_json),
    field_perms=_load(fields_json),
    presets=_load(presets_json),
  )
  click.echo(f"Stored policy {policy.id}")


@click.command()
@click.argument("policy_id")
@handle_exceptions
def delete_policy(policy_id):

  _checker().delete_policy(policy_id)
  click.echo(f"Deleted policy {policy_id}")


@click.group()
def policy():
    pass

policy.add_command(init_table,"init")
policy.add_command(list_policies,"list")
policy.add_command(set_policy,"set")
policy.add_command(delete_policy,"delete")
