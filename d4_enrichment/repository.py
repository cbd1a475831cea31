"""
Enrichment persistence

``EnrichmentRepository`` is the narrow storage port the engine depends
on: append an enrichment record, read the latest records of a client,
apply a review and update the client. ``SqlAlchemyEnrichmentRepository``
implements it on the SQLAlchemy models; this is the only place typed
values are turned into JSON columns.

Review writes are compare-and-set on ``(id, version)`` so two reviewers,
or a reviewer racing a re-enrichment, cannot both apply a patch.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import fields as dataclass_fields
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import DatabaseError
from core.logging import get_logger
from core.utils import utcnow
from database.models import Activity, Client, ClientEnrichment, WebsiteAnalysis
from database.session import SessionLocal

from .exceptions import ReviewConflictError
from .models import (
    ClientEnrichmentStatus,
    ClientProfile,
    EmailEntry,
    EnrichmentRecord,
    PhoneEntry,
    RecordStatus,
    ReviewStatus,
    serialize_value,
)
from .website_analysis import WebsiteAnalysisResult

logger = get_logger(__name__, domain="d4")

ACTIVITY_TYPE = "IA_ENRIQUECIMIENTO"


class EnrichmentRepository(ABC):
    """Storage operations used by the enrichment engine"""

    @abstractmethod
    async def get_client(self, client_id: str) -> ClientProfile | None:
        """Client by id, None when missing or soft-deleted"""

    @abstractmethod
    async def get_clients(self, client_ids: list[str]) -> list[ClientProfile]:
        """Existing, non-deleted clients in input order"""

    @abstractmethod
    async def append_record(
        self,
        record: EnrichmentRecord,
        client_status: ClientEnrichmentStatus | None = None,
        touch_ultima_ia: bool = False,
    ) -> EnrichmentRecord:
        """Store a new record and optionally update the client in the same transaction"""

    @abstractmethod
    async def get_record(self, record_id: str) -> EnrichmentRecord | None: ...

    @abstractmethod
    async def latest_record(self, client_id: str) -> EnrichmentRecord | None: ...

    @abstractmethod
    async def latest_pending_record(self, client_id: str) -> EnrichmentRecord | None: ...

    @abstractmethod
    async def list_records(self, client_id: str) -> list[EnrichmentRecord]:
        """Every record of a client, newest first"""

    @abstractmethod
    async def apply_review(
        self,
        record: EnrichmentRecord,
        expected_version: int,
        client_patch: dict[str, Any],
        client_status: ClientEnrichmentStatus,
    ) -> EnrichmentRecord:
        """
        Write the reviewed record, the client patch and the client status
        atomically

        Raises:
            ReviewConflictError: the stored version is not ``expected_version``
        """

    @abstractmethod
    async def add_activity(self, client_id: str, description: str, user_id: str | None = None) -> None: ...

    @abstractmethod
    async def save_website_analysis(self, client_id: str, analysis: WebsiteAnalysisResult) -> None: ...

    @abstractmethod
    async def get_website_analysis(self, client_id: str) -> WebsiteAnalysisResult | None: ...

    @abstractmethod
    async def clients_needing_enrichment(self, limit: int) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def enrichment_stats(self) -> dict[str, int]: ...

    @abstractmethod
    async def pending_confirmation(self) -> list[tuple[ClientProfile, EnrichmentRecord]]:
        """Latest pending record per client, newest first"""


def _client_from_row(row: Client) -> ClientProfile:
    return ClientProfile(
        id=row.id,
        nombre=row.nombre,
        email=row.email,
        telefono=row.telefono,
        direccion=row.direccion,
        ciudad=row.ciudad,
        provincia=row.provincia,
        industria=row.industria,
        sitio_web=row.sitio_web,
        notas=row.notas,
        facebook=row.facebook,
        instagram=row.instagram,
        linkedin=row.linkedin,
        twitter=row.twitter,
        whatsapp=row.whatsapp,
        enrichment_status=row.enrichment_status or ClientEnrichmentStatus.NONE,
        ultima_ia=row.ultima_ia,
    )


def _entries(raw, entry_type):
    if not raw:
        return None
    entries = [e for e in (entry_type.from_raw(item) for item in raw) if e is not None]
    return entries or None


def _record_from_row(row: ClientEnrichment) -> EnrichmentRecord:
    return EnrichmentRecord(
        id=row.id,
        client_id=row.cliente_id,
        website=row.website,
        website_score=row.website_score,
        emails=_entries(row.emails, EmailEntry),
        phones=_entries(row.phones, PhoneEntry),
        address=row.address,
        address_score=row.address_score,
        description=row.description,
        description_score=row.description_score,
        industry=row.industry,
        industry_score=row.industry_score,
        company_size=row.company_size,
        company_size_score=row.company_size_score,
        social_profiles=dict(row.social_profiles) if row.social_profiles else None,
        ai_providers_used=list(row.ai_providers_used or []),
        status=row.status,
        field_statuses={name: ReviewStatus(status) for name, status in (row.field_statuses or {}).items()},
        enriched_at=row.enriched_at,
        reviewed_at=row.reviewed_at,
        reviewed_by=row.reviewed_by,
        version=row.version,
    )


def _record_columns(record: EnrichmentRecord) -> dict[str, Any]:
    return {
        "website": record.website,
        "website_score": record.website_score,
        "emails": serialize_value(record.emails),
        "phones": serialize_value(record.phones),
        "address": record.address,
        "address_score": record.address_score,
        "description": record.description,
        "description_score": record.description_score,
        "industry": record.industry,
        "industry_score": record.industry_score,
        "company_size": record.company_size,
        "company_size_score": record.company_size_score,
        "social_profiles": serialize_value(record.social_profiles),
        "ai_providers_used": list(record.ai_providers_used),
        "status": record.status,
        "field_statuses": {name: status.value for name, status in record.field_statuses.items()},
        "reviewed_at": record.reviewed_at,
        "reviewed_by": record.reviewed_by,
    }


_ANALYSIS_COLUMNS = [
    f.name for f in dataclass_fields(WebsiteAnalysisResult) if f.name not in ("url", "success", "analyzed_at")
]


class SqlAlchemyEnrichmentRepository(EnrichmentRepository):
    """Repository over the SQLAlchemy models; each call is one short transaction"""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    @contextmanager
    def _transaction(self, operation: str):
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error during {operation}: {e}")
            raise DatabaseError(f"Database error during {operation}", operation=operation) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _active_clients(session):
        return session.query(Client).filter(Client.deleted_at.is_(None))

    async def get_client(self, client_id: str) -> ClientProfile | None:
        with self._transaction("get_client") as session:
            row = self._active_clients(session).filter(Client.id == client_id).first()
            return _client_from_row(row) if row else None

    async def get_clients(self, client_ids: list[str]) -> list[ClientProfile]:
        if not client_ids:
            return []
        with self._transaction("get_clients") as session:
            rows = self._active_clients(session).filter(Client.id.in_(client_ids)).all()
            by_id = {row.id: _client_from_row(row) for row in rows}
        ordered = []
        for client_id in dict.fromkeys(client_ids):
            if client_id in by_id:
                ordered.append(by_id[client_id])
        return ordered

    async def append_record(
        self,
        record: EnrichmentRecord,
        client_status: ClientEnrichmentStatus | None = None,
        touch_ultima_ia: bool = False,
    ) -> EnrichmentRecord:
        with self._transaction("append_record") as session:
            row = ClientEnrichment(
                id=record.id,
                cliente_id=record.client_id,
                enriched_at=record.enriched_at,
                version=record.version,
                **_record_columns(record),
            )
            session.add(row)

            client_update: dict[str, Any] = {}
            if client_status is not None:
                client_update["enrichment_status"] = client_status
            if touch_ultima_ia:
                client_update["ultima_ia"] = utcnow()
            if client_update:
                session.query(Client).filter(Client.id == record.client_id).update(
                    client_update, synchronize_session=False
                )
        logger.debug(f"Stored enrichment record {record.id} for client {record.client_id}")
        return record

    async def get_record(self, record_id: str) -> EnrichmentRecord | None:
        with self._transaction("get_record") as session:
            row = session.query(ClientEnrichment).filter(ClientEnrichment.id == record_id).first()
            return _record_from_row(row) if row else None

    async def latest_record(self, client_id: str) -> EnrichmentRecord | None:
        with self._transaction("latest_record") as session:
            row = (
                session.query(ClientEnrichment)
                .filter(ClientEnrichment.cliente_id == client_id)
                .order_by(ClientEnrichment.enriched_at.desc())
                .first()
            )
            return _record_from_row(row) if row else None

    async def latest_pending_record(self, client_id: str) -> EnrichmentRecord | None:
        with self._transaction("latest_pending_record") as session:
            row = (
                session.query(ClientEnrichment)
                .filter(
                    ClientEnrichment.cliente_id == client_id,
                    ClientEnrichment.status == RecordStatus.PENDING,
                )
                .order_by(ClientEnrichment.enriched_at.desc())
                .first()
            )
            return _record_from_row(row) if row else None

    async def list_records(self, client_id: str) -> list[EnrichmentRecord]:
        with self._transaction("list_records") as session:
            rows = (
                session.query(ClientEnrichment)
                .filter(ClientEnrichment.cliente_id == client_id)
                .order_by(ClientEnrichment.enriched_at.desc())
                .all()
            )
            return [_record_from_row(row) for row in rows]

    async def apply_review(
        self,
        record: EnrichmentRecord,
        expected_version: int,
        client_patch: dict[str, Any],
        client_status: ClientEnrichmentStatus,
    ) -> EnrichmentRecord:
        with self._transaction("apply_review") as session:
            updated = (
                session.query(ClientEnrichment)
                .filter(ClientEnrichment.id == record.id, ClientEnrichment.version == expected_version)
                .update({**_record_columns(record), "version": expected_version + 1}, synchronize_session=False)
            )
            if updated != 1:
                logger.warning(f"Review of record {record.id} lost a race at version {expected_version}")
                raise ReviewConflictError(record.id, expected_version)

            session.query(Client).filter(Client.id == record.client_id).update(
                {**client_patch, "enrichment_status": client_status}, synchronize_session=False
            )

        record.version = expected_version + 1
        return record

    async def add_activity(self, client_id: str, description: str, user_id: str | None = None) -> None:
        with self._transaction("add_activity") as session:
            session.add(Activity(tipo=ACTIVITY_TYPE, descripcion=description, cliente_id=client_id, usuario_id=user_id))

    async def save_website_analysis(self, client_id: str, analysis: WebsiteAnalysisResult) -> None:
        values = {name: getattr(analysis, name) for name in _ANALYSIS_COLUMNS}
        values["errors"] = list(analysis.errors) or None
        with self._transaction("save_website_analysis") as session:
            row = session.query(WebsiteAnalysis).filter(WebsiteAnalysis.cliente_id == client_id).first()
            if row is None:
                row = WebsiteAnalysis(cliente_id=client_id)
                session.add(row)
            row.url = analysis.url
            row.analyzed_at = analysis.analyzed_at or utcnow()
            for name, value in values.items():
                setattr(row, name, value)

    async def get_website_analysis(self, client_id: str) -> WebsiteAnalysisResult | None:
        with self._transaction("get_website_analysis") as session:
            row = session.query(WebsiteAnalysis).filter(WebsiteAnalysis.cliente_id == client_id).first()
            if row is None:
                return None
            values = {name: getattr(row, name) for name in _ANALYSIS_COLUMNS}
            values["errors"] = list(row.errors or [])
            return WebsiteAnalysisResult(url=row.url, success=True, analyzed_at=row.analyzed_at, **values)

    async def clients_needing_enrichment(self, limit: int) -> list[dict[str, Any]]:
        with self._transaction("clients_needing_enrichment") as session:
            rows = (
                self._active_clients(session)
                .outerjoin(WebsiteAnalysis, WebsiteAnalysis.cliente_id == Client.id)
                .filter(
                    or_(
                        Client.enrichment_status == ClientEnrichmentStatus.NONE,
                        (WebsiteAnalysis.id.is_(None)) & (Client.sitio_web.isnot(None)),
                    )
                )
                .order_by(Client.fecha_creacion.desc())
                .limit(limit)
                .all()
            )
            return [
                {
                    "id": row.id,
                    "nombre": row.nombre,
                    "sitio_web": row.sitio_web,
                    "has_enrichment": row.enrichment_status != ClientEnrichmentStatus.NONE,
                    "has_website_analysis": row.website_analysis is not None,
                }
                for row in rows
            ]

    async def enrichment_stats(self) -> dict[str, int]:
        with self._transaction("enrichment_stats") as session:
            clients = self._active_clients(session)
            total = clients.count()
            enriched = clients.filter(Client.enrichment_status != ClientEnrichmentStatus.NONE).count()
            with_website = clients.filter(Client.sitio_web.isnot(None)).count()
            confirmed = clients.filter(Client.enrichment_status == ClientEnrichmentStatus.COMPLETE).count()
            awaiting = clients.filter(
                Client.enrichment_status.in_([ClientEnrichmentStatus.PENDING, ClientEnrichmentStatus.PARTIAL])
            ).count()
            analyzed = session.query(func.count(WebsiteAnalysis.id)).scalar() or 0

        return {
            "total_clients": total,
            "enriched_clients": enriched,
            "analyzed_websites": analyzed,
            "pending_enrichment": total - enriched,
            "pending_analysis": max(with_website - analyzed, 0),
            "confirmed_clients": confirmed,
            "pending_confirmation": awaiting,
        }

    async def pending_confirmation(self) -> list[tuple[ClientProfile, EnrichmentRecord]]:
        with self._transaction("pending_confirmation") as session:
            rows = (
                session.query(ClientEnrichment, Client)
                .join(Client, Client.id == ClientEnrichment.cliente_id)
                .filter(ClientEnrichment.status == RecordStatus.PENDING, Client.deleted_at.is_(None))
                .order_by(ClientEnrichment.enriched_at.desc())
                .all()
            )
            seen = set()
            pending = []
            for enrichment, client in rows:
                if client.id in seen:
                    continue
                seen.add(client.id)
                pending.append((_client_from_row(client), _record_from_row(enrichment)))
            return pending
