# create_tables.py
import logging

from database import engine, Base
# Import every model so it registers with Base
from modules.documents.models import User, Document, Signer, Signature, SigningToken
from modules.audit.models import AuditLog
from modules.notifications.models.notification import Notification

logger = logging.getLogger(__name__)


def create_tables(bind=engine):
    """Create all tables in the database."""
    logger.info("Creating tables: %s", ", ".join(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=bind)


if __name__ == "__main__":
    create_tables()
