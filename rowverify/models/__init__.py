# rowverify — Database Models
# Import all models here for SQLAlchemy discovery

from rowverify.models.user import User      # noqa
from rowverify.models.entry import Entry    # noqa
