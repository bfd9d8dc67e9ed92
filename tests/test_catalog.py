"""Tests for the schema catalog and its cached provider."""

import json
from unittest.mock import MagicMock

import pytest

from docintake.config import Settings
from docintake.core.catalog import (
    DEFAULT_ID_FIELDS,
    DEFAULT_NAME_FIELDS,
    CatalogProvider,
    SchemaCatalog,
    catalog_from_data,
    load_catalog,
)
from docintake.core.exceptions import SchemaCatalogError
from docintake.core.models import DocumentTypeSchema, ValueFrequency


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestBundledCatalog:

    def test_known_types(self, catalog):
        assert {"cedula-identidad", "liquidacion-sueldo", "boletas-anual", "cuenta-bancaria"} <= catalog.known_ids

    def test_frequencies(self, catalog):
        assert catalog.frequency_of("cedula-identidad") == ValueFrequency.NONE
        assert catalog.frequency_of("liquidacion-sueldo") == ValueFrequency.MONTH
        assert catalog.frequency_of("boletas-anual") == ValueFrequency.YEAR

    def test_repeatable_follows_frequency(self, catalog):
        assert not catalog.is_repeatable("cedula-identidad")
        assert catalog.is_repeatable("liquidacion-sueldo")
        assert catalog.is_repeatable("cuenta-bancaria")

    def test_aliases_loaded_in_declared_order(self, catalog):
        assert catalog.aliases_for("liquidacion-sueldo", "liquido_a_pagar") == (
            "liquido_pagar", "alcance_liquido", "total_liquido"
        )
        assert catalog.aliases_for("liquidacion-sueldo", "no_existe") == ()
        assert catalog.aliases_for("desconocido", "rut") == ()

    def test_field_descriptions(self, catalog):
        schema = catalog.get_schema("cuenta-bancaria")
        assert "saldo_final" in schema.fields
        assert schema.fields["saldo_final"].description

    def test_identity_fields_extend_defaults(self, catalog):
        identity = catalog.identity_fields("liquidacion-sueldo")
        assert identity.id_fields == DEFAULT_ID_FIELDS + ("trabajador_rut",)
        assert identity.name_fields == DEFAULT_NAME_FIELDS

    def test_unknown_type(self, catalog):
        assert catalog.get_schema("foo") is None
        assert "foo" not in catalog
        assert catalog.frequency_of("foo") == ValueFrequency.NONE
        assert not catalog.is_repeatable("foo")


class TestCatalogFromData:

    def test_id_keyed_mapping_with_period_format(self):
        catalog = catalog_from_data({
            "liquidacion-sueldo": {"periodo": "YYYY-MM", "campos": ["liquido_a_pagar"]},
            "boletas-anual": {"periodo": "YYYY", "campos": {"total_liquido": "Total líquido"}},
            "cedula-identidad": {"campos": {"rut": {"description": "RUN"}}},
        })

        assert catalog.frequency_of("liquidacion-sueldo") == ValueFrequency.MONTH
        assert catalog.frequency_of("boletas-anual") == ValueFrequency.YEAR
        assert catalog.frequency_of("cedula-identidad") == ValueFrequency.NONE
        assert list(catalog.get_schema("liquidacion-sueldo").fields) == ["liquido_a_pagar"]
        assert catalog.get_schema("boletas-anual").fields["total_liquido"].description == "Total líquido"

    def test_value_frequency_key(self):
        catalog = catalog_from_data([{"id": "x", "valueFrequency": "day"}])
        assert catalog.frequency_of("x") == ValueFrequency.DAY

    def test_schema_aliases_merge_with_table(self):
        catalog = catalog_from_data(
            [{"id": "x", "aliases": {"monto": ["importe"]}}],
            aliases={"x": {"monto": ["valor", "importe"]}}
        )
        assert catalog.aliases_for("x", "monto") == ("importe", "valor")

    def test_explicit_repeatable_overrides_frequency(self):
        catalog = catalog_from_data([{"id": "x", "freq": "month", "repeatable": False}])
        assert not catalog.is_repeatable("x")

    def test_entries_without_id_are_skipped(self):
        catalog = catalog_from_data([{"label": "sin id"}, "texto", {"id": "x"}])
        assert catalog.known_ids == frozenset({"x"})

    def test_invalid_frequency_raises(self):
        with pytest.raises(SchemaCatalogError):
            catalog_from_data([{"id": "x", "freq": "weekly"}])

    def test_duplicate_ids_raise(self):
        with pytest.raises(SchemaCatalogError):
            SchemaCatalog([DocumentTypeSchema(id="x"), DocumentTypeSchema(id="x")])

    def test_malformed_alias_entries_ignored(self):
        catalog = catalog_from_data([{"id": "x"}], aliases={"x": {"a": "b"}, "y": ["z"]})
        assert catalog.aliases_for("x", "a") == ()

    def test_top_level_must_be_list_or_object(self):
        with pytest.raises(SchemaCatalogError):
            catalog_from_data("doctypes")


class TestLoadCatalog:

    def test_load_from_files(self, tmp_path):
        catalog_path = tmp_path / "doctypes.json"
        aliases_path = tmp_path / "aliases.json"
        catalog_path.write_text(json.dumps([{"id": "x", "freq": "year"}]), encoding="utf-8")
        aliases_path.write_text(json.dumps({"x": {"total": ["monto"]}}), encoding="utf-8")

        catalog = load_catalog(catalog_path, aliases_path)

        assert catalog.frequency_of("x") == ValueFrequency.YEAR
        assert catalog.aliases_for("x", "total") == ("monto",)

    def test_missing_file(self, tmp_path):
        with pytest.raises(SchemaCatalogError) as exc_info:
            load_catalog(tmp_path / "missing.json")
        assert exc_info.value.source.endswith("missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{broken", encoding="utf-8")
        with pytest.raises(SchemaCatalogError):
            load_catalog(path)

    def test_alias_table_must_be_object(self, tmp_path):
        catalog_path = tmp_path / "doctypes.json"
        aliases_path = tmp_path / "aliases.json"
        catalog_path.write_text("[]", encoding="utf-8")
        aliases_path.write_text("[]", encoding="utf-8")
        with pytest.raises(SchemaCatalogError):
            load_catalog(catalog_path, aliases_path)


class TestCatalogProvider:

    def test_snapshot_is_cached_within_ttl(self):
        first = SchemaCatalog([DocumentTypeSchema(id="a")])
        loader = MagicMock(return_value=first)
        clock = FakeClock()
        provider = CatalogProvider(loader, ttl_seconds=60, clock=clock)

        assert provider.snapshot() is first
        clock.now = 59
        assert provider.snapshot() is first
        assert loader.call_count == 1

    def test_snapshot_reloads_after_ttl(self):
        first = SchemaCatalog([DocumentTypeSchema(id="a")])
        second = SchemaCatalog([DocumentTypeSchema(id="b")])
        loader = MagicMock(side_effect=[first, second])
        clock = FakeClock()
        provider = CatalogProvider(loader, ttl_seconds=60, clock=clock)

        snapshot = provider.snapshot()
        clock.now = 60
        refreshed = provider.snapshot()

        assert refreshed is second
        # A snapshot already handed out is unaffected by the refresh
        assert snapshot.known_ids == frozenset({"a"})

    def test_failed_reload_serves_previous_snapshot(self):
        first = SchemaCatalog([DocumentTypeSchema(id="a")])
        loader = MagicMock(side_effect=[first, OSError("catalog service down")])
        clock = FakeClock()
        provider = CatalogProvider(loader, ttl_seconds=10, clock=clock)

        provider.snapshot()
        clock.now = 11
        assert provider.snapshot() is first

    def test_failed_first_load_raises(self):
        provider = CatalogProvider(MagicMock(side_effect=OSError("down")), ttl_seconds=10)
        with pytest.raises(SchemaCatalogError):
            provider.snapshot()

    def test_refresh_and_invalidate(self):
        loader = MagicMock(side_effect=lambda: SchemaCatalog([DocumentTypeSchema(id="a")]))
        provider = CatalogProvider(loader, ttl_seconds=1000, clock=FakeClock())

        provider.snapshot()
        provider.refresh()
        provider.invalidate()
        provider.snapshot()

        assert loader.call_count == 3

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            CatalogProvider(ttl_seconds=-1)

    def test_from_settings_with_custom_catalog(self, tmp_path):
        catalog_path = tmp_path / "doctypes.json"
        catalog_path.write_text(json.dumps({"x": {"periodo": "YYYY-MM"}}), encoding="utf-8")
        settings = Settings(gemini_api_key="k", catalog_path=catalog_path, catalog_ttl_seconds=5)

        provider = CatalogProvider.from_settings(settings)
        catalog = provider.snapshot()

        assert catalog.known_ids == frozenset({"x"})
        assert catalog.aliases_for("x", "docdate") == ()

    def test_from_settings_defaults_to_bundled_catalog(self):
        provider = CatalogProvider.from_settings(Settings(gemini_api_key="k"))
        assert "cedula-identidad" in provider.snapshot()
