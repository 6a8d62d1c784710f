"""
MongoDB connection and the insert helper used by the repository.

`db` is None when DATABASE_URL is not configured; callers check for it.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient

import config

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db = None

if config.DATABASE_URL:
    # MongoClient connects lazily, so this never blocks at import time
    client = MongoClient(config.DATABASE_URL)
    db = client[config.DATABASE_NAME]
else:
    logger.warning("DATABASE_URL is not set, database disabled")


def _as_dict(data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude={"id"})
    return dict(data)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database) -> str:
    """Insert one document into `database` and return its id as a string."""
    doc = _as_dict(data)
    doc.setdefault("created_at", datetime.now(timezone.utc))
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)

