# Package marker
# models register on the shared Base; load them together through db.base
import recitescore.db.base  # noqa
