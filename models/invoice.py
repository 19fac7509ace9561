import enum
from decimal import Decimal

from sqlalchemy import (
     Column, Integer, String, Numeric, Date, DateTime, ForeignKey, Enum, UniqueConstraint, func
)
from sqlalchemy.orm import relationship
from .base import Base


class InvoiceStatus(str, enum.Enum):
     """Enumeration for invoice payment status."""
     DUE = "DUE"
     PARTIAL = "PARTIAL"
     PAID = "PAID"
     OVERDUE = "OVERDUE"


# Statuses the overdue scan is allowed to touch
UNSETTLED_STATUSES = (InvoiceStatus.DUE, InvoiceStatus.PARTIAL)


class Invoice(Base):
     """
     Invoice model - one billing record per tenant per calendar month.

     amount = base_rent + electricity_charges + other_charges + late_fees at
     creation time; afterwards late fees are added to amount incrementally so
     partial-payment adjustments are preserved.
     """
     __tablename__ = "invoices"
     __table_args__ = (
          UniqueConstraint("tenant_id", "month", name="uq_invoices_tenant_month"),
     )

     id = Column(Integer, primary_key=True, autoincrement=True)

     # Foreign keys
     owner_id = Column(
          Integer,
          ForeignKey("users.id", ondelete="NO ACTION"),
          nullable=False,
          index=True
     )
     tenant_id = Column(
          Integer,
          ForeignKey("tenant_profiles.id", ondelete="CASCADE"),
          nullable=False,
          index=True
     )
     month = Column(String(7), nullable=False, index=True)  # YYYY-MM

     # Charges
     base_rent = Column(Numeric(12, 2), nullable=False)
     electricity_charges = Column(Numeric(12, 2), default=0, nullable=False)
     other_charges = Column(Numeric(12, 2), default=0, nullable=False)
     late_fees = Column(Numeric(12, 2), default=0, nullable=False)
     amount = Column(Numeric(12, 2), nullable=False)

     due_date = Column(Date, nullable=False, index=True)
     status = Column(
          Enum(InvoiceStatus, name="invoice_status", create_constraint=True),
          default=InvoiceStatus.DUE,
          nullable=False,
          index=True
     )
     paid_at = Column(DateTime, nullable=True)

     # Timestamps
     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

     # Relationships
     tenant = relationship("TenantProfile", back_populates="invoices")
     owner = relationship("User")

     def __repr__(self):
          return f"<Invoice(id={self.id}, month='{self.month}', amount={self.amount}, status='{self.status.value}')>"

     @property
     def has_late_fee(self) -> bool:
          return Decimal(self.late_fees or 0) > 0


class UtilityChargeStatus(str, enum.Enum):
     PENDING = "PENDING"
     APPROVED = "APPROVED"
     REJECTED = "REJECTED"


class ElectricityBill(Base):
     """
     Metered electricity charge for a tenant-month. Only APPROVED bills are
     merged into the generated invoice.
     """
     __tablename__ = "electricity_bills"

     id = Column(Integer, primary_key=True, autoincrement=True)
     owner_id = Column(Integer, ForeignKey("users.id", ondelete="NO ACTION"), nullable=False, index=True)
     tenant_id = Column(Integer, ForeignKey("tenant_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
     month = Column(String(7), nullable=False, index=True)
     units_consumed = Column(Numeric(10, 2), nullable=True)
     amount = Column(Numeric(12, 2), nullable=False)
     status = Column(
          Enum(UtilityChargeStatus, name="utility_charge_status", create_constraint=True),
          default=UtilityChargeStatus.PENDING,
          nullable=False
     )
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     def __repr__(self):
          return f"<ElectricityBill(tenant_id={self.tenant_id}, month='{self.month}', status='{self.status.value}')>"
