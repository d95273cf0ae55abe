import functools
import json

import click
from fastapi import HTTPException


def handle_exceptions(func):
  @functools.wraps(func)
  def wrapper(*args, **kwargs):
    try:
      return func(*args, **kwargs)
    except json.JSONDecodeError as e:
      click.echo(f"[{click.style('400',fg='red')}] Invalid JSON: {e}")
    except HTTPException as e:
      click.echo(f"[{click.style(str(e.status_code),fg='red')}] {e.detail}")
    raise click.exceptions.Exit(1)

  return wrapper
