from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase

from eventlottery.db.metadata import metadata_obj

# Surrogate keys are BIGINT on server databases; SQLite only autoincrements
# INTEGER PRIMARY KEY columns.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    metadata = metadata_obj
