from contextlib import asynccontextmanager
from typing import AsyncIterator

import certifi
from fastapi import FastAPI
from mongoengine import connect, disconnect

from examprep.utils.config import settings


def init_mongo() -> None:
    options = {"tz_aware": True}
    if settings.mongo_scheme == "mongodb+srv":
        options["tlsCAFile"] = certifi.where()
    connect(host=settings.mongo_uri, alias="default", **options)


def close_mongo() -> None:
    disconnect(alias="default")


@asynccontextmanager
async def mongo_lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_mongo()
    try:
        yield
    finally:
        close_mongo()
