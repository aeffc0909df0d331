# surveyhub/db/base.py
from uuid import uuid4

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# JSONB on Postgres, plain JSON everywhere else (sqlite in local runs and tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid4())


# Single Declarative Base used by ALL models
class Base(DeclarativeBase):
    pass
