"""
SQLAlchemy ORM models for index tables.

The tables themselves are created by the migrations package; these
classes only map them. For log payload schemas, see schemas.py.
"""

from sqlalchemy import BigInteger, Column, Index, Integer, Text

from ssbindex.storage import Base


class Message(Base):
    """
    One indexed log entry.

    Table: messages
    Primary Key: id (surrogate)
    flume_seq is the entry's offset in the append-only log.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    flume_seq = Column(BigInteger, unique=True, nullable=False)
    seq = Column(Integer, nullable=False)
    key_id = Column(Integer, unique=True, nullable=False)
    author_id = Column(Integer, nullable=False)

    __table_args__ = (
        Index("messages_author_id_index", "author_id"),
        Index("messages_author_id_seq_index", "author_id", "seq"),
    )

    def __repr__(self):
        return f"<Message(flume_seq={self.flume_seq}, author_id={self.author_id}, seq={self.seq})>"


class Author(Base):
    """Feed id of a message author, e.g. @...=.ed25519"""
    __tablename__ = "authors"

    id = Column(Integer, primary_key=True)
    author = Column(Text, unique=True, nullable=False)


class Key(Base):
    """Content-addressed message key, e.g. %...=.sha256"""
    __tablename__ = "keys"

    id = Column(Integer, primary_key=True)
    key = Column(Text, unique=True, nullable=False)
