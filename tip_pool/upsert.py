from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_for(db: Session):
    """INSERT construct for the session's dialect that supports ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    try:
        return _INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"no ON CONFLICT upsert for dialect {dialect!r}") from None
