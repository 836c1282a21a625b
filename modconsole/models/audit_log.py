"""Audit log model: append-only hash chain."""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey

from modconsole.db.base import Base, new_id


class AuditLog(Base):
    """One link of the global audit chain.

    This table is APPEND-ONLY: no UPDATE or DELETE operations are ever
    performed on it. ``chain_index`` runs 1..N without gaps across all
    communities, and ``prev_hash`` of entry k equals ``hash`` of entry k-1.
    """
    __tablename__ = "audit_logs"

    id = Column(String(32), primary_key=True, default=new_id)
    chain_index = Column(Integer, unique=True, nullable=False)
    prev_hash = Column(String(64), nullable=True)
    hash = Column(String(64), nullable=False)
    community_id = Column(String(32), ForeignKey("communities.id"), nullable=True, index=True)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)  # e.g. "approval.requested"
    ip = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    metadata_json = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, index=True)


class AuditChainLock(Base):
    """Single-row mutex for dialects without advisory locks.

    Appenders ``SELECT ... FOR UPDATE`` this row before reading the chain tail.
    """
    __tablename__ = "audit_chain_locks"

    id = Column(Integer, primary_key=True)
    name = Column(String(50), nullable=False, default="audit_chain")
