"""
Field review state machine

Every suggested field starts PENDING and moves once to CONFIRMED or
REJECTED. When no field is left PENDING the record itself is CONFIRMED
(fully reviewed, not "all accepted") and the client becomes COMPLETE;
otherwise the client is PARTIAL.

Confirmed and edited fields are copied onto the client through a fixed
field-to-column mapping. Each write is a compare-and-set on the record
version so concurrent reviews of the same record cannot both land.
"""

import copy
from dataclasses import dataclass
from typing import Any

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.logging import get_logger
from core.utils import utcnow

from .exceptions import InvalidReviewFieldError, ReviewConflictError
from .models import (
    CLIENT_SOCIAL_COLUMNS,
    SOCIAL_NETWORKS,
    BulkReviewOutcome,
    ClientEnrichmentStatus,
    EnrichableField,
    EnrichmentRecord,
    RecordStatus,
    ReviewableField,
    ReviewAction,
    ReviewOutcome,
    ReviewStatus,
    parse_field_value,
)
from .repository import EnrichmentRepository

logger = get_logger(__name__, domain="d4")

BASIC_FIELDS = [
    ReviewableField.WEBSITE,
    ReviewableField.INDUSTRY,
    ReviewableField.DESCRIPTION,
    ReviewableField.COMPANY_SIZE,
    ReviewableField.ADDRESS,
    ReviewableField.EMAILS,
    ReviewableField.PHONES,
]

_RECORD_ATTRIBUTES = {
    ReviewableField.WEBSITE: "website",
    ReviewableField.INDUSTRY: "industry",
    ReviewableField.DESCRIPTION: "description",
    ReviewableField.COMPANY_SIZE: "company_size",
    ReviewableField.ADDRESS: "address",
    ReviewableField.EMAILS: "emails",
    ReviewableField.PHONES: "phones",
    ReviewableField.SOCIAL_PROFILES: "social_profiles",
}

_ENRICHABLE = {
    ReviewableField.WEBSITE: EnrichableField.WEBSITE,
    ReviewableField.INDUSTRY: EnrichableField.INDUSTRY,
    ReviewableField.DESCRIPTION: EnrichableField.DESCRIPTION,
    ReviewableField.COMPANY_SIZE: EnrichableField.COMPANY_SIZE,
    ReviewableField.ADDRESS: EnrichableField.ADDRESS,
    ReviewableField.EMAILS: EnrichableField.EMAILS,
    ReviewableField.PHONES: EnrichableField.PHONES,
    ReviewableField.SOCIAL_PROFILES: EnrichableField.SOCIAL_PROFILES,
}


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, dict)):
        return len(value) > 0
    return True


def build_field_statuses(record: EnrichmentRecord) -> dict[str, ReviewStatus]:
    """
    Initial review map for a record

    One PENDING entry per populated basic field and one per social network
    with a non-empty URL. ``socialProfiles`` itself is never listed; its
    networks are reviewed individually.
    """
    statuses: dict[str, ReviewStatus] = {}
    for reviewable in BASIC_FIELDS:
        if _has_value(getattr(record, _RECORD_ATTRIBUTES[reviewable])):
            statuses[reviewable.value] = ReviewStatus.PENDING

    profiles = record.social_profiles or {}
    for network in SOCIAL_NETWORKS:
        url = profiles.get(network)
        if isinstance(url, str) and url:
            statuses[ReviewableField.for_network(network).value] = ReviewStatus.PENDING
    return statuses


def client_patch_for(reviewable: ReviewableField, record: EnrichmentRecord) -> dict[str, Any]:
    """Client columns written when ``reviewable`` is accepted from ``record``"""
    patch: dict[str, Any] = {}

    if reviewable == ReviewableField.WEBSITE:
        if record.website:
            patch["sitio_web"] = record.website
    elif reviewable == ReviewableField.INDUSTRY:
        if record.industry:
            patch["industria"] = record.industry
    elif reviewable == ReviewableField.DESCRIPTION:
        if record.description:
            patch["notas"] = record.description
    elif reviewable == ReviewableField.ADDRESS:
        if record.address:
            patch["direccion"] = record.address
    elif reviewable == ReviewableField.EMAILS:
        if record.emails:
            patch["email"] = record.emails[0].email
    elif reviewable == ReviewableField.PHONES:
        if record.phones:
            patch["telefono"] = record.phones[0].number
    elif reviewable == ReviewableField.SOCIAL_PROFILES:
        profiles = record.social_profiles or {}
        for network in CLIENT_SOCIAL_COLUMNS:
            if profiles.get(network):
                patch[network] = profiles[network]
    elif reviewable.network is not None:
        network = reviewable.network
        url = (record.social_profiles or {}).get(network)
        if network in CLIENT_SOCIAL_COLUMNS and url:
            patch[network] = url
    # company size, youtube and tiktok have no client column

    return patch


def apply_edited_value(record: EnrichmentRecord, reviewable: ReviewableField, raw: Any) -> None:
    """
    Replace a stored suggestion with a reviewer-supplied value

    Raises:
        ValidationError: the value cannot be typed for the field
    """
    network = reviewable.network
    if network is not None:
        if not isinstance(raw, str) or not raw.strip():
            raise ValidationError(f"Valor invalido para {reviewable.value}", field=reviewable.value)
        profiles = dict(record.social_profiles or {})
        profiles[network] = raw.strip()
        record.social_profiles = profiles
        return

    value = parse_field_value(_ENRICHABLE[reviewable], raw)
    if value is None:
        raise ValidationError(f"Valor invalido para {reviewable.value}", field=reviewable.value)
    setattr(record, _RECORD_ATTRIBUTES[reviewable], value)


def validate_fields(fields: list[str]) -> list[ReviewableField]:
    """Parse field names, rejecting any outside the reviewable set"""
    invalid = [name for name in fields if name not in ReviewableField._value2member_map_]
    if invalid:
        raise InvalidReviewFieldError(invalid)
    return [ReviewableField(name) for name in fields]


@dataclass
class _Transition:
    record: EnrichmentRecord
    fields: list[ReviewableField]
    client_patch: dict[str, Any]
    client_status: ClientEnrichmentStatus


class FieldReviewer:
    """Applies confirm, reject and edit decisions to pending enrichment records"""

    def __init__(self, repository: EnrichmentRepository):
        self.repository = repository

    def _transition(
        self,
        record: EnrichmentRecord,
        action: ReviewAction,
        requested: list[ReviewableField],
        edited_values: dict[str, Any] | None,
        user_id: str | None,
    ) -> _Transition | None:
        """
        Compute the next state of ``record`` without writing anything

        Returns None when none of the requested fields is pending.
        """
        updated = copy.deepcopy(record)
        statuses = dict(updated.field_statuses) if updated.field_statuses else build_field_statuses(updated)

        pending = []
        for reviewable in requested:
            if statuses.get(reviewable.value) == ReviewStatus.PENDING and reviewable not in pending:
                pending.append(reviewable)
        if not pending:
            return None

        patch: dict[str, Any] = {}
        if action == ReviewAction.REJECT:
            for reviewable in pending:
                statuses[reviewable.value] = ReviewStatus.REJECTED
        else:
            for reviewable in pending:
                statuses[reviewable.value] = ReviewStatus.CONFIRMED

            if action == ReviewAction.EDIT:
                for reviewable in pending:
                    if reviewable.value in edited_values:
                        apply_edited_value(updated, reviewable, edited_values[reviewable.value])
                        patch.update(client_patch_for(reviewable, updated))
            else:
                for reviewable in pending:
                    patch.update(client_patch_for(reviewable, updated))

        updated.field_statuses = statuses
        if updated.all_reviewed:
            updated.status = RecordStatus.CONFIRMED
            updated.reviewed_at = utcnow()
            updated.reviewed_by = user_id
            client_status = ClientEnrichmentStatus.COMPLETE
        else:
            client_status = ClientEnrichmentStatus.PARTIAL

        return _Transition(record=updated, fields=pending, client_patch=patch, client_status=client_status)

    async def _log_activity(self, client_id: str, description: str, user_id: str | None, warnings: list[str]):
        try:
            await self.repository.add_activity(client_id, description, user_id)
        except Exception as e:
            logger.warning(f"Could not log review activity for client {client_id}: {e}")
            warnings.append(f"{client_id}: no se pudo registrar la actividad")

    async def review_fields(
        self,
        client_id: str,
        action: str | ReviewAction,
        fields: list[str],
        edited_values: dict[str, Any] | None = None,
        enrichment_id: str | None = None,
        user_id: str | None = None,
    ) -> ReviewOutcome:
        """
        Review fields of one client's pending enrichment

        Raises:
            ValidationError: bad action, empty or unknown fields, or an edit
                without values
            NotFoundError: no pending enrichment for the client
            ConflictError: record already processed, no listed field
                pending, or a concurrent review won the race
        """
        try:
            action = ReviewAction(action)
        except ValueError:
            raise ValidationError('Accion invalida. Usar "confirm", "reject" o "edit"', field="action")
        if not fields:
            raise ValidationError("Se requiere una lista de campos (fields)", field="fields")
        if action == ReviewAction.EDIT and not isinstance(edited_values, dict):
            raise ValidationError('Se requiere editedValues para la accion "edit"', field="edited_values")
        requested = validate_fields(fields)

        if enrichment_id:
            record = await self.repository.get_record(enrichment_id)
            if record is not None and record.client_id != client_id:
                record = None
        else:
            record = await self.repository.latest_pending_record(client_id)

        if record is None:
            raise NotFoundError(
                "enrichment",
                enrichment_id or client_id,
                "No hay datos de enriquecimiento pendientes para este cliente",
            )
        if record.status != RecordStatus.PENDING:
            raise ConflictError("El enriquecimiento ya fue procesado", record_id=record.id)

        transition = self._transition(record, action, requested, edited_values, user_id)
        if transition is None:
            raise ConflictError("Ninguno de los campos indicados esta pendiente", record_id=record.id)

        updated = await self.repository.apply_review(
            transition.record, record.version, transition.client_patch, transition.client_status
        )

        names = [f.value for f in transition.fields]
        warnings: list[str] = []
        await self._log_activity(client_id, f"Campos IA {action.label}: {', '.join(names)}", user_id, warnings)
        logger.info(f"Client {client_id}: {action.value} {names} on record {record.id}")

        return ReviewOutcome(
            action=action,
            record_id=updated.id,
            fields=names,
            field_statuses=dict(updated.field_statuses),
            all_reviewed=updated.all_reviewed,
            record_status=updated.status,
            client_status=transition.client_status,
            client_patch=transition.client_patch,
            warnings=warnings,
        )

    async def _bulk(self, items: list[tuple[str, list[str]]], action: ReviewAction, user_id: str | None):
        outcome = BulkReviewOutcome()
        verb = "confirmar" if action == ReviewAction.CONFIRM else "rechazar"

        for client_id, fields in items:
            try:
                record = await self.repository.latest_pending_record(client_id)
                if record is None:
                    outcome.errors.append(f"{client_id}: no tiene enriquecimiento pendiente")
                    continue

                requested = [ReviewableField(f) for f in fields if f in ReviewableField._value2member_map_]
                transition = self._transition(record, action, requested, None, user_id)
                if transition is None:
                    outcome.errors.append(f"{client_id}: no hay campos validos pendientes para {verb}")
                    continue

                await self.repository.apply_review(
                    transition.record, record.version, transition.client_patch, transition.client_status
                )
            except ReviewConflictError as e:
                outcome.errors.append(f"{client_id}: {e.message}")
                continue
            except Exception as e:
                logger.error(f"Bulk {action.value} failed for client {client_id}: {e}")
                outcome.errors.append(f"{client_id}: {str(e) or 'Error desconocido'}")
                continue

            names = [f.value for f in transition.fields]
            await self._log_activity(
                client_id, f"Campos IA {action.label}: {', '.join(names)}", user_id, outcome.warnings
            )
            outcome.count += len(names)

        return outcome

    async def confirm_fields(self, items: list[tuple[str, list[str]]], user_id: str | None = None) -> BulkReviewOutcome:
        """Confirm fields across clients; per-client problems are reported, never raised"""
        return await self._bulk(items, ReviewAction.CONFIRM, user_id)

    async def reject_fields(self, items: list[tuple[str, list[str]]], user_id: str | None = None) -> BulkReviewOutcome:
        return await self._bulk(items, ReviewAction.REJECT, user_id)
