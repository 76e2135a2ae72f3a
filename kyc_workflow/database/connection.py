import re
import motor.motor_asyncio
from beanie import init_beanie
from kyc_workflow.database.models import DOCUMENT_MODELS
from kyc_workflow.core import settings
import logging

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Global database instance
database = None


def _mask_mongo_uri(uri: str) -> str:
    """Never log credentials; keep only scheme and host."""
    m = re.match(r'(?P<prefix>mongodb(?:\+srv)?://)(?:(?P<creds>[^@]+)@)?(?P<rest>.+)', uri or "")
    if not m:
        return "mongodb://<redacted>"
    host_part = m.group('rest').split('/')[0]
    return f"{m.group('prefix')}***@{host_part}"


async def init_db():
    global database
    try:
        mongodb_uri = settings.MONGODB_URI
        mongodb_db_name = settings.MONGODB_DB_NAME

        if not mongodb_uri:
            logger.error("MONGODB_URI is not set in environment variables")
            raise ValueError("MONGODB_URI is not set in environment variables")
        if not mongodb_db_name:
            logger.error("MONGODB_DB_NAME is not set in environment variables")
            raise ValueError("MONGODB_DB_NAME is not set in environment variables")

        logger.info("Attempting to connect to MongoDB at: %s", _mask_mongo_uri(mongodb_uri))
        logger.info("Database name: %s", mongodb_db_name)

        client_options = dict(
            serverSelectionTimeoutMS=30000,
            connectTimeoutMS=30000,
            socketTimeoutMS=30000,
            retryWrites=True,
            w='majority',
        )
        if settings.MONGODB_TLS:
            client_options["tls"] = True
        client = motor.motor_asyncio.AsyncIOMotorClient(mongodb_uri, **client_options)

        logger.info("Testing MongoDB connection...")
        await client.admin.command('ping')
        logger.info("Successfully connected to MongoDB!")

        database = client[mongodb_db_name]

        logger.info("Initializing Beanie with document models...")
        await init_beanie(database, document_models=DOCUMENT_MODELS)
        logger.info("Beanie initialized successfully!")

        return database

    except ValueError as e:
        logger.error(f"Configuration error: {str(e)}")
        raise RuntimeError(f"Configuration error: {str(e)}") from e
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        logger.error(f"Exception type: {type(e)}")
        raise
