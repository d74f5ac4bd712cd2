"""
SQLAlchemy ORM models backing the key-value service.

A logical key is a row in kv_keys; its list elements live in kv_list_items,
ordered by the autoincrement id. For Pydantic request/response schemas,
see schemas.py.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey

from candlewall.storage import Base


class KeyEntry(Base):
    """
    Marks that a logical key exists.

    Table: kv_keys
    Primary Key: key (guards against double seeding)
    """
    __tablename__ = "kv_keys"

    key = Column(String, primary_key=True)
    created_at = Column(String, nullable=False)  # Server time ISO-8601


class ListItem(Base):
    """
    One element of the list stored under a key.

    Table: kv_list_items
    """
    __tablename__ = "kv_list_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String, ForeignKey("kv_keys.key"), nullable=False, index=True)
    value = Column(Text, nullable=False)
    created_at = Column(String, nullable=False)
