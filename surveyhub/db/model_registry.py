"""
Import every model module here once so that Base.metadata is fully populated.

Add a single import line here whenever you create a new model module.
"""

from surveyhub.db.base import Base  # the shared Declarative Base

# --- import all your model modules (side-effect: tables register on Base.metadata)
from surveyhub.models import survey  # noqa
from surveyhub.models import option_set  # noqa

# expose for Alembic
metadata = Base.metadata
