"""Unit tests for propvar.property: records, the store and its serializer."""
from __future__ import annotations

import io
import json
import struct
from pathlib import Path
from uuid import UUID

import pytest
import yaml

from propvar.codec import VariantCodec
from propvar.engine import STG_E_INVALIDPARAMETER
from propvar.errors import SerializationError
from propvar.memory.allocator import TaskAllocator
from propvar.property import (
    NAMED_PROPERTIES_FMTID,
    STORAGE_VERSION,
    MemoryPropertyStore,
    Property,
    PropertySerializer,
    read_properties,
    read_property,
)
from propvar.types import ClipData, Int16, VarType, VariantType, Vector
from propvar.variant import write_native

SUMMARY = UUID("f29f85e0-4ff9-1068-ab91-08002b27b3d9")
DOCUMENT = UUID("d5cdd502-2e9c-101b-9397-08002b2cf9ae")


@pytest.fixture
def store(codec: VariantCodec) -> MemoryPropertyStore:
    store = MemoryPropertyStore(codec)
    store.set(SUMMARY, 2, "Quarterly report")
    store.set(SUMMARY, 4, "A. Author", VarType.VT_LPSTR)
    store.set(DOCUMENT, 14, Int16(3))
    store.set_named("Reviewed", True)
    return store


# ---------------------------------------------------------------------------
# Store access
# ---------------------------------------------------------------------------


class TestStoreAccess:
    def test_get(self, store: MemoryPropertyStore) -> None:
        assert store.get(SUMMARY, 2) == "Quarterly report"
        assert store.get(NAMED_PROPERTIES_FMTID, "Reviewed") is True

    def test_get_default(self, store: MemoryPropertyStore) -> None:
        assert store.get(SUMMARY, 99) is None
        assert store.get(SUMMARY, 99, default="none") == "none"

    def test_set_replaces(self, store: MemoryPropertyStore) -> None:
        store.set(SUMMARY, 2, "Annual report")
        assert store.get(SUMMARY, 2) == "Annual report"
        assert len(store) == 4

    def test_delete(self, store: MemoryPropertyStore) -> None:
        store.delete(SUMMARY, 2)
        assert (SUMMARY, 2) not in store
        with pytest.raises(KeyError):
            store.delete(SUMMARY, 2)

    def test_clear(self, store: MemoryPropertyStore) -> None:
        store.clear()
        assert len(store) == 0

    def test_fmtids_in_insertion_order(self, store: MemoryPropertyStore) -> None:
        assert store.fmtids() == [SUMMARY, DOCUMENT, NAMED_PROPERTIES_FMTID]

    def test_store_holds_no_native_memory(self, store: MemoryPropertyStore, allocator: TaskAllocator) -> None:
        assert allocator.live_allocations == 0

    def test_repr(self, store: MemoryPropertyStore) -> None:
        assert repr(store) == "MemoryPropertyStore(4 properties)"


class TestKeyValidation:
    def test_name_outside_named_set(self, codec: VariantCodec) -> None:
        with pytest.raises(ValueError):
            MemoryPropertyStore(codec).set(SUMMARY, "Title", "x")

    def test_id_inside_named_set(self, codec: VariantCodec) -> None:
        with pytest.raises(ValueError):
            MemoryPropertyStore(codec).set(NAMED_PROPERTIES_FMTID, 5, "x")

    def test_empty_name(self, codec: VariantCodec) -> None:
        with pytest.raises(ValueError):
            MemoryPropertyStore(codec).set_named("", "x")

    @pytest.mark.parametrize("key", [-1, 2**32])
    def test_id_out_of_range(self, codec: VariantCodec, key: int) -> None:
        with pytest.raises(ValueError):
            MemoryPropertyStore(codec).set(SUMMARY, key, "x")

    @pytest.mark.parametrize("key", [True, 1.0, None])
    def test_bad_key_type(self, codec: VariantCodec, key: object) -> None:
        with pytest.raises(TypeError):
            MemoryPropertyStore(codec).set(SUMMARY, key, "x")  # type: ignore[arg-type]

    def test_unencodable_value_is_not_stored(self, codec: VariantCodec) -> None:
        store = MemoryPropertyStore(codec)
        with pytest.raises(TypeError):
            store.set(SUMMARY, 1, [1, "two"])
        assert len(store) == 0


# ---------------------------------------------------------------------------
# Enumerator contract
# ---------------------------------------------------------------------------


class TestEnumerator:
    def test_entries(self, store: MemoryPropertyStore) -> None:
        keys = [(fmtid, key) for fmtid, key, _ in store]
        assert keys == [
            (SUMMARY, 2),
            (SUMMARY, 4),
            (DOCUMENT, 14),
            (NAMED_PROPERTIES_FMTID, "Reviewed"),
        ]

    def test_records_are_cleared_after_each_step(
        self, store: MemoryPropertyStore, allocator: TaskAllocator
    ) -> None:
        for _, _, address in store:
            assert address in allocator
            assert allocator.live_allocations <= 2
        assert allocator.live_allocations == 0

    def test_early_exit_clears_the_current_record(
        self, store: MemoryPropertyStore, allocator: TaskAllocator
    ) -> None:
        entries = iter(store)
        next(entries)
        entries.close()
        assert allocator.live_allocations == 0

    def test_read_property_copies(self, store: MemoryPropertyStore, allocator: TaskAllocator) -> None:
        for fmtid, key, address in store:
            if key == 4:
                prop = read_property(allocator, fmtid, key, address)
        assert prop == Property(
            name=None,
            fmtid=SUMMARY,
            id=4,
            type=VariantType(VarType.VT_LPSTR),
            value="A. Author",
        )
        assert allocator.live_allocations == 0

    def test_read_properties_from_any_enumerator(self, codec: VariantCodec, allocator: TaskAllocator) -> None:
        variant = codec.to_variant(Vector(["a", "b"], VarType.VT_BSTR))
        record = write_native(variant, allocator)
        entries = [(SUMMARY, 7, record.address), (NAMED_PROPERTIES_FMTID, "Tags", record.address)]
        props = list(read_properties(entries, allocator))
        assert [p.key for p in props] == [7, "Tags"]
        assert props[1].id == 0
        assert props[0].value == ["a", "b"]
        record.release()
        variant.dispose()
        assert allocator.live_allocations == 0

    def test_properties(self, store: MemoryPropertyStore) -> None:
        props = store.properties()
        assert [p.value for p in props] == ["Quarterly report", "A. Author", 3, True]
        assert props[3].name == "Reviewed"
        assert props[2].type == VariantType(VarType.VT_I2)

    def test_property_str(self) -> None:
        prop = Property(None, SUMMARY, 2, VariantType(VarType.VT_LPWSTR), "Title")
        assert str(prop) == "{f29f85e0-4ff9-1068-ab91-08002b27b3d9} 2 => Title"


# ---------------------------------------------------------------------------
# Serialized storage
# ---------------------------------------------------------------------------


class TestStorageFormat:
    def test_empty_store(self, codec: VariantCodec) -> None:
        assert MemoryPropertyStore(codec).to_bytes() == bytes(4)

    def test_block_layout(self, codec: VariantCodec) -> None:
        store = MemoryPropertyStore(codec)
        store.set(SUMMARY, 2, Int16(7))
        data = store.to_bytes()
        size, version = struct.unpack_from("<II", data)
        assert version == STORAGE_VERSION
        assert data[8:24] == SUMMARY.bytes_le
        value_size, pid, reserved = struct.unpack_from("<IIB", data, 24)
        assert (value_size, pid, reserved) == (17, 2, 0)
        assert data[33:41] == bytes.fromhex("0200000007000000")
        assert data[41:45] == bytes(4)
        assert size == 45
        assert data[45:] == bytes(4)

    def test_named_value_layout(self, codec: VariantCodec) -> None:
        store = MemoryPropertyStore(codec)
        store.set_named("Ab", None)
        data = store.to_bytes()
        value_size, name_size, _ = struct.unpack_from("<IIB", data, 24)
        assert name_size == 6
        assert data[33:39] == "Ab\x00".encode("utf-16-le")
        assert value_size == 9 + 6 + 4

    def test_round_trip(self, store: MemoryPropertyStore, codec: VariantCodec) -> None:
        loaded = MemoryPropertyStore.from_bytes(store.to_bytes(), codec)
        assert loaded.properties() == store.properties()

    def test_save_and_load_path(self, store: MemoryPropertyStore, tmp_path: Path) -> None:
        path = tmp_path / "props.bin"
        store.save(path)
        loaded = MemoryPropertyStore.load(str(path), store.codec)
        assert loaded.get(DOCUMENT, 14) == 3

    def test_save_and_load_stream(self, store: MemoryPropertyStore) -> None:
        stream = io.BytesIO()
        store.save(stream)
        stream.seek(0)
        loaded = MemoryPropertyStore.load(stream, store.codec)
        assert len(loaded) == 4

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda data: data[:-4],
            lambda data: data[:10],
            lambda data: struct.pack("<I", 8) + data[4:],
            lambda data: data[:4] + struct.pack("<I", 0x12345678) + data[8:],
            lambda data: data[:24] + struct.pack("<I", 3) + data[28:],
        ],
    )
    def test_corrupt_layout(self, store: MemoryPropertyStore, codec: VariantCodec, mutate) -> None:
        with pytest.raises(SerializationError) as info:
            MemoryPropertyStore.from_bytes(mutate(store.to_bytes()), codec)
        assert info.value.code == STG_E_INVALIDPARAMETER

    def test_corrupt_value(self, codec: VariantCodec, allocator: TaskAllocator) -> None:
        store = MemoryPropertyStore(codec)
        store.set(SUMMARY, 2, "text")
        data = bytearray(store.to_bytes())
        data[37:41] = struct.pack("<I", 99)
        with pytest.raises(SerializationError):
            MemoryPropertyStore.from_bytes(bytes(data), codec)
        assert allocator.live_allocations == 0

    def test_lpstr_value_with_unmapped_byte_loads(self, codec: VariantCodec) -> None:
        store = MemoryPropertyStore(codec)
        store.set(SUMMARY, 4, "x", VarType.VT_LPSTR)
        data = bytearray(store.to_bytes())
        assert data[41] == ord("x")
        data[41] = 0x81
        loaded = MemoryPropertyStore.from_bytes(bytes(data), codec)
        assert loaded.get(SUMMARY, 4) == "\ufffd"

    def test_name_with_lone_surrogate_round_trips(self, codec: VariantCodec) -> None:
        store = MemoryPropertyStore(codec)
        store.set_named("\ud800x", 1)
        loaded = MemoryPropertyStore.from_bytes(store.to_bytes(), codec)
        assert [prop.key for prop in loaded.properties()] == ["\ud800x"]


# ---------------------------------------------------------------------------
# Serializer
# ---------------------------------------------------------------------------


class TestPropertySerializer:
    def test_value_mapping(self) -> None:
        serializer = PropertySerializer()
        assert serializer.value_to_data(Int16(4)) == 4
        assert serializer.value_to_data(b"\x0a\xff") == "0aff"
        assert serializer.value_to_data(UUID(int=1)) == "{00000000-0000-0000-0000-000000000001}"
        assert serializer.value_to_data(ClipData(format=3, data=b"\x01")) == {"data": "01", "format": 3}
        assert serializer.value_to_data([b"\x01", None]) == ["01", None]

    def test_to_json(self, store: MemoryPropertyStore) -> None:
        data = json.loads(PropertySerializer().to_json(store.properties()))
        assert data[0] == {
            "fmtid": "{f29f85e0-4ff9-1068-ab91-08002b27b3d9}",
            "id": 2,
            "type": "VT_LPWSTR",
            "value": "Quarterly report",
        }
        assert data[3]["name"] == "Reviewed"
        assert data[3]["value"] is True

    def test_to_yaml(self, store: MemoryPropertyStore) -> None:
        data = yaml.safe_load(PropertySerializer().to_yaml(store.properties()))
        assert [item["type"] for item in data] == ["VT_LPWSTR", "VT_LPSTR", "VT_I2", "VT_BOOL"]
