from sqlalchemy import Boolean, Column, String, ForeignKey
from sqlalchemy.orm import relationship
from database import Base

class Node(Base):
    __tablename__ = "nodes"

    id = Column(String(36), primary_key=True, index=True)
    name = Column(String, nullable=True)
    is_root = Column(Boolean, default=False, nullable=False, index=True)
    parent_id = Column(String(36), ForeignKey("nodes.id", ondelete="CASCADE"), nullable=True, index=True)

    parent = relationship("Node", remote_side=[id], backref="children", foreign_keys=[parent_id])
