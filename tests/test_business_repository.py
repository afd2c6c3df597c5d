"""
tests/test_business_repository.py

Pytest tests for BusinessRepository against SQLite.

Coverage
--------
- slugify(): accents, punctuation, spacing, length cap
- normalize_website(): scheme-less hosts get https, non-web schemes rejected
- create_if_absent(): creates pending rows, returns the existing row on repeat
- advance_status(): one step forward, the pending -> enriched shortcut,
  stale (behind-current) targets as no-ops, skips and exits from failed rejected
- mark_failed() from live statuses only
- Enrichment and translation persistence
- Trigger queries, including the stalled-research re-drive
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session, sessionmaker

from db.base import utcnow
from db.models.business import BusinessSource, BusinessStatus, is_forward_step
from db.repositories.business_repository import BusinessRepository, normalize_website, slugify
from db.repositories.errors import BusinessNotFoundError, InvalidStatusTransitionError
from db.session import session_scope
from tests.fakes import ReferenceIds, load_business


class TestSlugify:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Casa Pepe", "casa-pepe"),
            ("  Marisquería   O'Porto!  ", "marisqueria-oporto"),
            ("Café -- Bar", "cafe-bar"),
            ("!!!", ""),
        ],
    )
    def test_slugify(self, name: str, expected: str) -> None:
        assert slugify(name) == expected

    def test_length_cap(self) -> None:
        assert len(slugify("a" * 300)) == 100


class TestNormalizeWebsite:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("cafe.example", "https://cafe.example/"),
            ("  www.cafe.example/menu?lang=gl ", "https://www.cafe.example/menu?lang=gl"),
            ("//cafe.example", "https://cafe.example/"),
            ("cafe.example:8080", "https://cafe.example:8080/"),
            ("HTTP://cafe.example/#top", "http://cafe.example/"),
            ("https://cafe.example/carta", "https://cafe.example/carta"),
        ],
    )
    def test_crawlable(self, raw: str, expected: str) -> None:
        assert normalize_website(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [None, "", "   ", "mailto:info@cafe.example", "tel:+34986000000", "ftp://cafe.example", "cafe example", "https://"],
    )
    def test_not_crawlable(self, raw: str | None) -> None:
        assert normalize_website(raw) is None


# ---------------------------------------------------------------------------
# create_if_absent
# ---------------------------------------------------------------------------


class TestCreateIfAbsent:
    def test_creates_pending_business(
        self,
        session_factory: sessionmaker[Session],
        reference_ids: ReferenceIds,
    ) -> None:
        with session_scope(session_factory) as session:
            business, created = BusinessRepository(session).create_if_absent(
                name="  Casa Pepe ",
                region_id=reference_ids.region_id,
                source=BusinessSource.DISCOVERY_SPIDER,
                website="https://casapepe.example",
                raw_data={"crawl_id": "abc"},
            )
            business_id = business.id

        stored = load_business(session_factory, business_id)
        assert created
        assert stored.name == "Casa Pepe"
        assert stored.website == "https://casapepe.example/"
        assert stored.slug == "casa-pepe"
        assert stored.status == BusinessStatus.PENDING
        assert stored.raw_data == {"crawl_id": "abc"}

    def test_same_slug_returns_existing(
        self,
        session_factory: sessionmaker[Session],
        reference_ids: ReferenceIds,
    ) -> None:
        with session_scope(session_factory) as session:
            repo = BusinessRepository(session)
            first, first_created = repo.create_if_absent(
                name="Casa Pepe",
                region_id=reference_ids.region_id,
                source=BusinessSource.GOOGLE_MAPS,
            )
            second, second_created = repo.create_if_absent(
                name="CASA  PEPE",
                region_id=reference_ids.region_id,
                source=BusinessSource.DISCOVERY_SPIDER,
            )

            assert first_created
            assert not second_created
            assert second.id == first.id

    def test_unusable_name_rejected(
        self,
        session_factory: sessionmaker[Session],
        reference_ids: ReferenceIds,
    ) -> None:
        with session_scope(session_factory) as session:
            with pytest.raises(ValueError):
                BusinessRepository(session).create_if_absent(
                    name="???",
                    region_id=reference_ids.region_id,
                    source=BusinessSource.MANUAL,
                )


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


def _advance(factory: sessionmaker[Session], business_id: uuid.UUID, target: str) -> bool:
    with session_scope(factory) as session:
        return BusinessRepository(session).advance_status(business_id, target)


class TestAdvanceStatus:
    def test_forward_chain(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        business_id = make_business()

        for target in (BusinessStatus.RESEARCHING, BusinessStatus.RESEARCHED, BusinessStatus.ENRICHED):
            assert _advance(session_factory, business_id, target)

        assert load_business(session_factory, business_id).status == BusinessStatus.ENRICHED

    def test_pending_to_enriched_shortcut(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        business_id = make_business()

        assert _advance(session_factory, business_id, BusinessStatus.ENRICHED)

    def test_skipping_a_step_is_rejected(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        business_id = make_business()

        with pytest.raises(InvalidStatusTransitionError):
            _advance(session_factory, business_id, BusinessStatus.RESEARCHED)
        assert load_business(session_factory, business_id).status == BusinessStatus.PENDING

    @pytest.mark.parametrize(
        "target",
        [BusinessStatus.PENDING, BusinessStatus.RESEARCHING, BusinessStatus.RESEARCHED],
    )
    def test_stale_targets_are_noops(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
        target: str,
    ) -> None:
        business_id = make_business(status=BusinessStatus.RESEARCHED)

        changed = _advance(session_factory, business_id, target)

        assert changed is False
        assert load_business(session_factory, business_id).status == BusinessStatus.RESEARCHED

    def test_failed_is_absorbing(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        business_id = make_business(status=BusinessStatus.FAILED)

        with pytest.raises(InvalidStatusTransitionError):
            _advance(session_factory, business_id, BusinessStatus.RESEARCHING)

    def test_unknown_business(self, session_factory: sessionmaker[Session], reference_ids: ReferenceIds) -> None:
        with pytest.raises(BusinessNotFoundError):
            _advance(session_factory, uuid.uuid4(), BusinessStatus.RESEARCHING)

    def test_is_forward_step_table(self) -> None:
        assert is_forward_step(BusinessStatus.ENRICHED, BusinessStatus.VERIFIED)
        assert is_forward_step(BusinessStatus.RESEARCHING, BusinessStatus.FAILED)
        assert not is_forward_step(BusinessStatus.VERIFIED, BusinessStatus.FAILED)
        assert not is_forward_step(BusinessStatus.RESEARCHED, BusinessStatus.PENDING)


class TestMarkFailed:
    def test_live_business_fails(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        business_id = make_business(status=BusinessStatus.RESEARCHING)

        with session_scope(session_factory) as session:
            assert BusinessRepository(session).mark_failed(business_id)

        assert load_business(session_factory, business_id).status == BusinessStatus.FAILED

    @pytest.mark.parametrize("status", [BusinessStatus.FAILED, BusinessStatus.VERIFIED])
    def test_final_statuses_unchanged(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
        status: str,
    ) -> None:
        business_id = make_business(status=status)

        with session_scope(session_factory) as session:
            assert not BusinessRepository(session).mark_failed(business_id)

        assert load_business(session_factory, business_id).status == status


# ---------------------------------------------------------------------------
# Enrichment, translation, trigger queries
# ---------------------------------------------------------------------------


class TestEnrichmentData:
    def test_save_enrichment_updates_description(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        business_id = make_business()

        with session_scope(session_factory) as session:
            BusinessRepository(session).save_enrichment(
                business_id,
                {"description": "  Family run since 1962. ", "tags": ["seafood"]},
            )

        stored = load_business(session_factory, business_id)
        assert stored.description == "Family run since 1962."
        assert stored.enrichment == {"description": "  Family run since 1962. ", "tags": ["seafood"]}
        assert stored.last_enriched_at is not None

    def test_translations_accumulate_per_locale(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        business_id = make_business()

        with session_scope(session_factory) as session:
            BusinessRepository(session).save_translation(business_id, "en", {"name": "Pepe's House"})
        with session_scope(session_factory) as session:
            BusinessRepository(session).save_translation(business_id, "es", {"name": "Casa Pepe"})

        assert load_business(session_factory, business_id).translations == {
            "en": {"name": "Pepe's House"},
            "es": {"name": "Casa Pepe"},
        }


class TestTriggerQueries:
    def test_list_ids_by_status(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        researched = make_business("Bar Uno", status=BusinessStatus.RESEARCHED)
        make_business("Bar Dos", status=BusinessStatus.PENDING)

        with session_scope(session_factory) as session:
            ids = BusinessRepository(session).list_ids_by_status(BusinessStatus.RESEARCHED)

        assert ids == [researched]

    def test_pending_without_website(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        no_site = make_business("Bar Uno")
        make_business("Bar Dos", website="https://bardos.example")
        make_business("Bar Tres", status=BusinessStatus.RESEARCHING)

        with session_scope(session_factory) as session:
            repo = BusinessRepository(session)
            later = repo.list_pending_without_website(created_before=utcnow() + timedelta(days=1))
            earlier = repo.list_pending_without_website(created_before=utcnow() - timedelta(days=1))

        assert later == [no_site]
        assert earlier == []

    def test_pending_with_website(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        with_site = make_business("Bar Uno", website="https://baruno.example/")
        make_business("Bar Dos")
        make_business("Bar Tres", website="")
        make_business("Bar Catro", website="https://barcatro.example/", status=BusinessStatus.RESEARCHING)

        with session_scope(session_factory) as session:
            ids = BusinessRepository(session).list_pending_with_website(
                created_before=utcnow() + timedelta(days=1),
            )

        assert ids == [with_site]

    def test_stale_by_status(
        self,
        session_factory: sessionmaker[Session],
        make_business: Callable[..., uuid.UUID],
    ) -> None:
        researching = make_business("Bar Uno", status=BusinessStatus.RESEARCHING)
        make_business("Bar Dos")

        with session_scope(session_factory) as session:
            repo = BusinessRepository(session)
            stale = repo.list_stale_by_status(
                BusinessStatus.RESEARCHING,
                updated_before=utcnow() + timedelta(days=1),
            )
            fresh = repo.list_stale_by_status(
                BusinessStatus.RESEARCHING,
                updated_before=utcnow() - timedelta(days=1),
            )

        assert stale == [researching]
        assert fresh == []
