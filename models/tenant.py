import enum

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum, ForeignKey, func
from sqlalchemy.orm import relationship
from .base import Base


class TenantStatus(str, enum.Enum):
     ACTIVE = "ACTIVE"
     INACTIVE = "INACTIVE"


class TenantProfile(Base):
     """
     TenantProfile model - a tenant's occupancy and billing terms with one owner.
     Only ACTIVE profiles are billed.
     """
     __tablename__ = "tenant_profiles"

     id = Column(Integer, primary_key=True, autoincrement=True)
     user_id = Column(Integer, ForeignKey("users.id", ondelete="NO ACTION"), nullable=True, index=True)
     owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

     name = Column(String(200), nullable=False)
     email = Column(String(255), nullable=True)
     monthly_rent = Column(Numeric(12, 2), nullable=False)

     status = Column(
          Enum(TenantStatus, name="tenant_status", create_constraint=True),
          default=TenantStatus.ACTIVE,
          nullable=False,
          index=True
     )

     # Timestamps
     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

     # Relationships
     invoices = relationship("Invoice", back_populates="tenant")

     def __repr__(self):
          return f"<TenantProfile(id={self.id}, name='{self.name}', status='{self.status.value}')>"
