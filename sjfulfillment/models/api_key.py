"""API key and API request log models for the external integration API."""
from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sjfulfillment.database import Base, BigId


class ApiKey(Base):
    """Merchant-scoped API key. The public key is sent as a Bearer token."""

    __tablename__ = 'api_key'

    id = Column(BigId, primary_key=True, autoincrement=True)
    merchant_id = Column(BigId, ForeignKey('merchant.id'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    public_key = Column(String(64), nullable=False, unique=True)
    secret_key_hash = Column(String(255), nullable=False)
    permissions = Column(JSON, nullable=False, default=dict)
    rate_limit = Column(Integer, nullable=False, default=1000)  # requests per hour
    usage_count = Column(Integer, nullable=False, default=0)
    last_used = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    merchant = relationship('Merchant')

    def __repr__(self):
        return f"<ApiKey(id={self.id}, merchant_id={self.merchant_id}, name='{self.name}')>"


class ApiLog(Base):
    """One row per external API request, whatever the outcome."""

    __tablename__ = 'api_log'

    id = Column(BigId, primary_key=True, autoincrement=True)
    api_key_id = Column(BigId, ForeignKey('api_key.id'), nullable=False, index=True)
    endpoint = Column(String(255), nullable=False)
    method = Column(String(10), nullable=False)
    status_code = Column(Integer, nullable=False)
    response_time = Column(Integer, nullable=True)  # milliseconds
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(255), nullable=True)
    request_body = Column(Text, nullable=True)
    response_body = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<ApiLog(id={self.id}, {self.method} {self.endpoint} -> {self.status_code})>"
