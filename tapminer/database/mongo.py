# tapminer/database/mongo.py
import re
import logging
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from tapminer.exceptions import ConfigurationError, StoreError
from .store import KeyValueStore, empty_state

logger = logging.getLogger(__name__)

STATE_COLLECTION = "tapminer_state"
STATE_DOCUMENT_ID = "state"


class MongoStore(KeyValueStore):
    """Keeps the whole state document as a single MongoDB record"""

    def __init__(self, uri, db_name, client=None):
        super().__init__()
        if client is None:
            if not uri:
                logger.error("MONGO_URI is not set in environment variables")
                raise ConfigurationError("MongoDB connection string is required")
            uri = uri.strip().strip('"')
            if not re.match(r'^mongodb(\+srv)?://', uri):
                logger.error(f"Invalid MONGO_URI format. Starts with: '{uri[:20]}...'")
                raise ConfigurationError("Invalid MongoDB URI format")
            client = MongoClient(uri)

        self.client = client
        self.collection = client[db_name][STATE_COLLECTION]
        logger.info(f"Using MongoDB database: {db_name}")

    def _read(self):
        try:
            doc = self.collection.find_one({"_id": STATE_DOCUMENT_ID})
        except PyMongoError as e:
            logger.error(f"MongoDB read error: {e}")
            raise StoreError(f"Failed to read state: {e}") from e
        if not doc:
            return empty_state()
        doc.pop("_id", None)
        return doc

    def _write(self, data):
        document = {key: value for key, value in data.items() if key != "_id"}
        try:
            self.collection.replace_one({"_id": STATE_DOCUMENT_ID}, document, upsert=True)
        except PyMongoError as e:
            logger.error(f"MongoDB write error: {e}")
            raise StoreError(f"Failed to write state: {e}") from e
