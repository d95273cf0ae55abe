import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.orm import Session

_PLACEHOLDER_RE = re.compile(r"\$(\d+)")


def to_named_binds(sql: str, args: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
    """Rewrite ``$n`` placeholders into ``:pn`` binds for :func:`sqlalchemy.text`"""
    named_sql = _PLACEHOLDER_RE.sub(lambda m: f":p{m.group(1)}", sql)
    params = {f"p{i}": value for i, value in enumerate(args, start=1)}
    return named_sql, params


class SqlExecutor:
    """Runs builder output (``$n`` SQL plus positional args) on a session.

    Driver errors propagate as SQLAlchemy exceptions; callers translate
    them.
    """

    def __init__(self, session: Session):
        self.session = session

    def _execute(self, sql: str, args: Sequence[Any]):
        named_sql, params = to_named_binds(sql, args)
        return self.session.execute(text(named_sql), params)

    def fetch_all(self, sql: str, args: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return [dict(row._mapping) for row in self._execute(sql, args)]

    def fetch_one(self, sql: str, args: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        row = self._execute(sql, args).first()
        return dict(row._mapping) if row is not None else None

    def fetch_value(self, sql: str, args: Sequence[Any] = ()) -> Any:
        return self._execute(sql, args).scalar()

    def execute(self, sql: str, args: Sequence[Any] = ()) -> int:
        return self._execute(sql, args).rowcount

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
