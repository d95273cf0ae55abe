import click

from .query import compile_filter, show_sql
from .policy import policy

@click.group()
def cli():
    pass

cli.add_command(show_sql,"sql")
cli.add_command(compile_filter,"filter")
cli.add_command(policy,"policy")

if __name__ == '__main__':
    cli()
