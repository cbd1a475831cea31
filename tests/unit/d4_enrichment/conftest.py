"""
Shared fixtures for D4 enrichment tests
"""
import pytest

from database.base import generate_uuid
from database.models import Activity, Client
from d4_enrichment.repository import SqlAlchemyEnrichmentRepository


@pytest.fixture
def repository(session_factory):
    return SqlAlchemyEnrichmentRepository(session_factory)


@pytest.fixture
def add_client(session_factory):
    """Insert a client row and return its id"""

    def _add(**values):
        values.setdefault("id", generate_uuid())
        values.setdefault("nombre", "Acme SAC")
        session = session_factory()
        try:
            session.add(Client(**values))
            session.commit()
        finally:
            session.close()
        return values["id"]

    return _add


@pytest.fixture
def activities(session_factory):
    """Activity descriptions logged for a client, oldest first"""

    def _list(client_id):
        session = session_factory()
        try:
            rows = session.query(Activity).filter(Activity.cliente_id == client_id).order_by(Activity.fecha).all()
            return [row.descripcion for row in rows]
        finally:
            session.close()

    return _list
