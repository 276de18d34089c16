import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from app.core.config import get_settings
from app.db.documents import (
    ApplicationDocument,
    AuditLogDocument,
    CreditBalanceDocument,
    CreditTransactionDocument,
    DisputeDocument,
    FailedJobDocument,
    JobCompletionDocument,
    JobDocument,
    NotificationDocument,
    PenaltyDocument,
    TrustRecordDocument,
    UserDocument,
    WorkerProfileDocument,
)

DOCUMENT_MODELS = [
    UserDocument,
    WorkerProfileDocument,
    JobDocument,
    ApplicationDocument,
    JobCompletionDocument,
    CreditBalanceDocument,
    CreditTransactionDocument,
    PenaltyDocument,
    TrustRecordDocument,
    DisputeDocument,
    NotificationDocument,
    AuditLogDocument,
    FailedJobDocument,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db() -> AsyncIOMotorClient:
    settings = get_settings()
    # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
    kwargs = {}
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    return client
