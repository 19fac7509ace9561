import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, Enum, ForeignKey, func
from sqlalchemy.orm import relationship
from .base import Base


class UserRole(str, enum.Enum):
     ADMIN = "ADMIN"
     OWNER = "OWNER"
     TENANT = "TENANT"


class User(Base):
     """
     User model - owners, tenants and administrators.

     Carries the contact details the notification channels deliver to
     (email, verified phone, FCM device token) and, for owners, the
     billing switches read by the invoice generator.
     """
     __tablename__ = "users"

     id = Column(Integer, primary_key=True, autoincrement=True)
     email = Column(String(255), unique=True, nullable=False, index=True)
     first_name = Column(String(100), nullable=False)
     last_name = Column(String(100), nullable=False)
     role = Column(Enum(UserRole, name="user_role", create_constraint=True), nullable=False, index=True)
     is_active = Column(Boolean, default=True, nullable=False)

     # Notification destinations
     phone = Column(String(20), nullable=True)
     phone_verified = Column(Boolean, default=False, nullable=False)
     fcm_token = Column(String(512), nullable=True)

     # Owner billing switches
     auto_generate_invoices = Column(Boolean, default=True, nullable=False)
     late_fee_percentage = Column(Numeric(5, 2), nullable=True)

     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     # Relationships
     billing_settings = relationship("BillingSettings", back_populates="owner", uselist=False)

     @property
     def full_name(self) -> str:
          return f"{self.first_name} {self.last_name}"

     def __repr__(self):
          return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"


class BillingSettings(Base):
     """
     Per-owner billing terms. Owners without a row fall back to
     User.late_fee_percentage and the configured defaults.
     """
     __tablename__ = "billing_settings"

     id = Column(Integer, primary_key=True, autoincrement=True)
     owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
     due_day = Column(Integer, default=5, nullable=False)  # day of the following month
     late_fee_percentage = Column(Numeric(5, 2), default=2, nullable=False)
     updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

     owner = relationship("User", back_populates="billing_settings")

     def __repr__(self):
          return f"<BillingSettings(owner_id={self.owner_id}, due_day={self.due_day})>"
