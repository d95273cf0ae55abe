import json
from urllib.parse import parse_qs

import click

from crudgate.cli.errors import handle_exceptions
from crudgate.permissions.filters import compile_filter_tree
from crudgate.query.builder import QueryBuilder
from crudgate.query.options import parse_comma_separated, parse_options


def _echo_statement(sql, args):
  click.echo(sql)
  click.echo(json.dumps(args, default=str))


@click.command()
@click.argument("table")
@click.argument("querystring", required=False, default="")
@click.option("--count", is_flag=True, help="Print the COUNT statement instead of the SELECT.")
@click.option("--fields", "allowed", default="", help="Comma separated fields allowed in filters and sorts.")
@click.option("--tree", "tree", default=None, help="Filter tree JSON AND-ed after the request filters.")
@handle_exceptions
def show_sql(table, querystring, count, allowed, tree):
  """Print the SQL built for TABLE from a request QUERYSTRING, e.g. 'filter[status]=active&sort=-id'"""

  params = parse_qs(querystring.lstrip("?"), keep_blank_values=True)
  options = parse_options(params, parse_comma_separated(allowed))

  builder = (
    QueryBuilder(table)
    .select(*options.fields)
    .where(options.filters)
    .where_tree(json.loads(tree) if tree else None)
    .order_by(options.sort)
    .paginate(options.pagination)
    .group_by(*options.group_by)
    .aggregate(options.aggregate)
  )

  if count:
    _echo_statement(*builder.build_count())
  else:
    _echo_statement(*builder.build_select())


@click.command()
@click.argument("filter_json")
@click.option("--offset", default=0, type=int, help="Number of placeholders already used by the statement.")
@handle_exceptions
def compile_filter(filter_json, offset):
  """Compile a permission filter tree into a SQL predicate"""

  sql, args = compile_filter_tree(json.loads(filter_json), offset)
  _echo_statement(sql, args)
