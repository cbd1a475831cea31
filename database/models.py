"""
Database models for the CRM enrichment engine

Clients, their append-only enrichment history, the latest website
analysis per client and the activity log. JSON columns hold the
serialized form of the typed enrichment values.
"""

import enum

from sqlalchemy import JSON, TIMESTAMP, Boolean, Column, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database.base import Base, StatusEnum, generate_uuid


class ClientEnrichmentStatus(str, enum.Enum):
    """Aggregate review status of a client's AI suggestions"""

    NONE = "NONE"
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    COMPLETE = "COMPLETE"


class RecordStatus(str, enum.Enum):
    """Status of one enrichment record; CONFIRMED means fully reviewed"""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"


class Client(Base):
    """Canonical client record that confirmed suggestions are written to"""

    __tablename__ = "clientes"

    id = Column(String, primary_key=True, default=generate_uuid)
    nombre = Column(String(500), nullable=False)
    email = Column(String(255), nullable=True)
    telefono = Column(String(100), nullable=True)
    direccion = Column(String(500), nullable=True)
    ciudad = Column(String(255), nullable=True)
    provincia = Column(String(255), nullable=True)
    industria = Column(String(255), nullable=True)
    sitio_web = Column(String(500), nullable=True)
    notas = Column(Text, nullable=True)

    # Social networks with a column of their own
    facebook = Column(String(500), nullable=True)
    instagram = Column(String(500), nullable=True)
    linkedin = Column(String(500), nullable=True)
    twitter = Column(String(500), nullable=True)
    whatsapp = Column(String(500), nullable=True)

    enrichment_status = Column(
        StatusEnum(ClientEnrichmentStatus),
        nullable=False,
        default=ClientEnrichmentStatus.NONE,
        index=True,
    )
    ultima_ia = Column(TIMESTAMP, nullable=True)

    fecha_creacion = Column(TIMESTAMP, nullable=False, server_default=func.now())
    deleted_at = Column(TIMESTAMP, nullable=True)

    enrichments = relationship("ClientEnrichment", back_populates="client", cascade="all, delete-orphan")
    website_analysis = relationship(
        "WebsiteAnalysis", back_populates="client", uselist=False, cascade="all, delete-orphan"
    )


class ClientEnrichment(Base):
    """One enrichment run for a client (append-only history)"""

    __tablename__ = "cliente_enrichments"

    id = Column(String, primary_key=True, default=generate_uuid)
    cliente_id = Column(String, ForeignKey("clientes.id", ondelete="CASCADE"), nullable=False)

    website = Column(String(500), nullable=True)
    website_score = Column(Float, nullable=True)
    emails = Column(JSON, nullable=True)
    phones = Column(JSON, nullable=True)
    address = Column(Text, nullable=True)
    address_score = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    description_score = Column(Float, nullable=True)
    industry = Column(String(255), nullable=True)
    industry_score = Column(Float, nullable=True)
    company_size = Column(String(100), nullable=True)
    company_size_score = Column(Float, nullable=True)
    social_profiles = Column(JSON, nullable=True)
    ai_providers_used = Column(JSON, nullable=True)

    status = Column(StatusEnum(RecordStatus), nullable=False, default=RecordStatus.PENDING)
    field_statuses = Column(JSON, nullable=True)
    enriched_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    reviewed_at = Column(TIMESTAMP, nullable=True)
    reviewed_by = Column(String(255), nullable=True)

    # Bumped on every review write; compared before writing
    version = Column(Integer, nullable=False, default=1)

    client = relationship("Client", back_populates="enrichments")

    __table_args__ = (
        Index("ix_cliente_enrichments_client_enriched", "cliente_id", "enriched_at"),
        Index("ix_cliente_enrichments_client_status", "cliente_id", "status"),
    )


class WebsiteAnalysis(Base):
    """Latest website analysis for a client"""

    __tablename__ = "website_analyses"

    id = Column(String, primary_key=True, default=generate_uuid)
    cliente_id = Column(String, ForeignKey("clientes.id", ondelete="CASCADE"), nullable=False, unique=True)
    url = Column(String(500), nullable=False)

    ssl_valid = Column(Boolean, nullable=True)
    has_https = Column(Boolean, nullable=True)
    hsts_enabled = Column(Boolean, nullable=True)
    x_frame_options = Column(String(100), nullable=True)
    has_csp = Column(Boolean, nullable=True)

    seo_title = Column(Text, nullable=True)
    seo_description = Column(Text, nullable=True)
    seo_h1_count = Column(Integer, nullable=True)
    seo_has_canonical = Column(Boolean, nullable=True)
    seo_indexable = Column(Boolean, nullable=True)
    has_viewport_meta = Column(Boolean, nullable=True)
    has_open_graph = Column(Boolean, nullable=True)
    has_twitter_cards = Column(Boolean, nullable=True)
    has_json_ld = Column(Boolean, nullable=True)

    response_time_ms = Column(Integer, nullable=True)
    errors = Column(JSON, nullable=True)
    analyzed_at = Column(TIMESTAMP, nullable=False, server_default=func.now())

    client = relationship("Client", back_populates="website_analysis")


class Activity(Base):
    """Activity log entry attached to a client"""

    __tablename__ = "actividades"

    id = Column(String, primary_key=True, default=generate_uuid)
    tipo = Column(String(50), nullable=False, default="IA_ENRIQUECIMIENTO")
    descripcion = Column(Text, nullable=False)
    cliente_id = Column(String, ForeignKey("clientes.id", ondelete="CASCADE"), nullable=False, index=True)
    usuario_id = Column(String(255), nullable=True)
    fecha = Column(TIMESTAMP, nullable=False, server_default=func.now())
