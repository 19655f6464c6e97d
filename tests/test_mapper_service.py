"""
Tests del servicio de mapeo.
"""
import pytest

from erp_marketplace_sync.exceptions import MappingFileError


class TestProductLookups:

    def test_maps_both_directions(self, mapper, write_mappings):
        write_mappings({"P1": "OFF1"})
        assert mapper.load_mappings() == 1

        assert mapper.map_internal_to_external("P1") == "OFF1"
        assert mapper.map_external_to_internal("OFF1") == "P1"

    def test_miss_returns_none(self, mapper, write_mappings):
        write_mappings({"P1": "OFF1"})
        mapper.load_mappings()

        assert mapper.map_internal_to_external("P404") is None
        assert mapper.map_external_to_internal("OFF404") is None

    @pytest.mark.parametrize("value", [None, "", 123, ["P1"]])
    def test_invalid_input_returns_none(self, mapper, write_mappings, value):
        write_mappings({"P1": "OFF1"})
        mapper.load_mappings()

        assert mapper.map_internal_to_external(value) is None
        assert mapper.map_external_to_internal(value) is None

    def test_lookup_before_load_returns_none(self, mapper):
        """Sin mapeos cargados el lookup no lanza excepción"""
        assert mapper.map_internal_to_external("P1") is None
        assert mapper.list_internal_ids() == []
        assert mapper.list_external_ids() == []

    def test_load_error_propagates(self, mapper, mapping_path):
        mapping_path.write_text("corrupto", encoding="utf-8")

        with pytest.raises(MappingFileError):
            mapper.load_mappings()

    def test_lists_ids(self, mapper, write_mappings):
        write_mappings({"P1": "OFF1", "P2": "OFF2"})
        mapper.load_mappings()

        assert sorted(mapper.list_internal_ids()) == ["P1", "P2"]
        assert sorted(mapper.list_external_ids()) == ["OFF1", "OFF2"]


class TestOrderMappings:

    def test_save_and_get_order_mapping(self, mapper):
        mapper.save_order_mapping("O1", "CO-1")

        assert mapper.get_internal_order_id("O1") == "CO-1"
        assert mapper.get_internal_order_id("O2") is None

    def test_delete_order_mapping(self, mapper):
        mapper.save_order_mapping("O1", "CO-1")

        assert mapper.delete_order_mapping("O1") is True
        assert mapper.get_internal_order_id("O1") is None


class TestStats:

    def test_stats_include_store_and_metrics(self, mapper, write_mappings):
        write_mappings({"P1": "OFF1"})
        mapper.load_mappings()
        mapper.map_internal_to_external("P404")

        stats = mapper.get_stats()
        assert stats["total_mappings"] == 1
        assert stats["is_loaded"] is True
        assert stats["metrics"]["lookups"]["internal_to_external"]["not_found"] == 1

    def test_summary(self, mapper, write_mappings):
        write_mappings({"P1": "OFF1"})
        mapper.load_mappings()
        mapper.map_internal_to_external("P1")
        mapper.map_internal_to_external("P404")

        summary = mapper.get_summary()
        assert summary["internal_to_external_success_rate"] == 50.0
