# recitescore/db/base.py
from sqlalchemy.orm import declarative_base

Base = declarative_base()

from recitescore.models.assignment import Assignment  # noqa
from recitescore.models.submission import Submission  # noqa
from recitescore.models.feedback import Feedback  # noqa
