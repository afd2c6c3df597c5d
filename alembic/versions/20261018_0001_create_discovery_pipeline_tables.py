"""create discovery pipeline tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "regions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "cities",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("region_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["region_id"], ["regions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cities_region_id", "cities", ["region_id"], unique=False)
    op.create_index("uq_cities_region_slug", "cities", ["region_id", "slug"], unique=True)

    op.create_table(
        "categories",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "businesses",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("region_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("city_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("category_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("website", sa.String(length=2048), nullable=True),
        sa.Column("address", sa.String(length=512), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column(
            "source",
            sa.String(length=50),
            nullable=False,
            comment="google_maps, openstreetmap, discovery_spider, manual, web_scrape",
        ),
        sa.Column(
            "raw_data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Source payload the listing was created from",
        ),
        sa.Column("enrichment", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column(
            "translations",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Translated fields keyed by locale",
        ),
        sa.Column("last_enriched_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["region_id"], ["regions.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["city_id"], ["cities.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("region_id", "slug", name="uq_businesses_region_slug"),
    )
    op.create_index("ix_businesses_status", "businesses", ["status"], unique=False)
    op.create_index("ix_businesses_city_id", "businesses", ["city_id"], unique=False)
    op.create_index(
        "ix_businesses_status_created_at",
        "businesses",
        ["status", "created_at"],
        unique=False,
    )

    op.create_table(
        "discovery_crawls",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "crawl_id",
            sa.String(length=64),
            nullable=False,
            comment="Opaque id, also the artifact directory name",
        ),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("seed_urls", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("max_pages", sa.Integer(), nullable=False),
        sa.Column("pages_crawled", sa.Integer(), nullable=False),
        sa.Column("businesses_created", sa.Integer(), nullable=False),
        sa.Column("businesses_skipped", sa.Integer(), nullable=False),
        sa.Column("businesses_failed", sa.Integer(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("region_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("city_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("crawl_finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["region_id"], ["regions.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["city_id"], ["cities.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("crawl_id"),
        sa.CheckConstraint(
            "(completed_at IS NOT NULL) = (status IN ('completed', 'failed'))",
            name="ck_discovery_crawls_completed_at_terminal",
        ),
    )
    op.create_index("ix_discovery_crawls_status", "discovery_crawls", ["status"], unique=False)
    op.create_index("ix_discovery_crawls_region_id", "discovery_crawls", ["region_id"], unique=False)
    op.create_index("ix_discovery_crawls_created_at", "discovery_crawls", ["created_at"], unique=False)

    op.create_table(
        "scrape_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source", sa.String(length=50), nullable=False, comment="google_maps, openstreetmap, ..."),
        sa.Column("query", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("businesses_found", sa.Integer(), nullable=False),
        sa.Column("businesses_created", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("region_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("city_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("category_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["region_id"], ["regions.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["city_id"], ["cities.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scrape_jobs_status", "scrape_jobs", ["status"], unique=False)
    op.create_index("ix_scrape_jobs_source_status", "scrape_jobs", ["source", "status"], unique=False)
    op.create_index("ix_scrape_jobs_created_at", "scrape_jobs", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_scrape_jobs_created_at", table_name="scrape_jobs")
    op.drop_index("ix_scrape_jobs_source_status", table_name="scrape_jobs")
    op.drop_index("ix_scrape_jobs_status", table_name="scrape_jobs")
    op.drop_table("scrape_jobs")

    op.drop_index("ix_discovery_crawls_created_at", table_name="discovery_crawls")
    op.drop_index("ix_discovery_crawls_region_id", table_name="discovery_crawls")
    op.drop_index("ix_discovery_crawls_status", table_name="discovery_crawls")
    op.drop_table("discovery_crawls")

    op.drop_index("ix_businesses_status_created_at", table_name="businesses")
    op.drop_index("ix_businesses_city_id", table_name="businesses")
    op.drop_index("ix_businesses_status", table_name="businesses")
    op.drop_table("businesses")

    op.drop_table("categories")

    op.drop_index("uq_cities_region_slug", table_name="cities")
    op.drop_index("ix_cities_region_id", table_name="cities")
    op.drop_table("cities")

    op.drop_table("regions")
