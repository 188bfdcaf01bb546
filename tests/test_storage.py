"""
Test suite for storage module

Tests in-memory and SQLite backends, transactions and compare-and-swap.
"""

import pytest

from lending_core.exceptions import ConcurrentUpdateConflict
from lending_core.storage import InMemoryStorage, SQLiteStorage, create_storage


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        storage = InMemoryStorage()
    else:
        storage = SQLiteStorage(tmp_path / "test.db")
    yield storage
    storage.close()


class TestBasicOperations:
    """Test CRUD operations on both backends"""

    def test_save_and_load(self, backend):
        """Test saving and loading a record"""
        backend.save("loans", "LN001", {"id": "LN001", "status": "draft"})

        assert backend.load("loans", "LN001") == {"id": "LN001", "status": "draft"}
        assert backend.exists("loans", "LN001")
        assert backend.load("loans", "LN404") is None

    def test_find_and_count(self, backend):
        """Test filtering and counting"""
        backend.save("loans", "LN001", {"id": "LN001", "status": "draft"})
        backend.save("loans", "LN002", {"id": "LN002", "status": "active"})

        assert [r["id"] for r in backend.find("loans", {"status": "active"})] == ["LN002"]
        assert backend.count("loans") == 2

    def test_delete_and_clear(self, backend):
        """Test deletion"""
        backend.save("loans", "LN001", {"id": "LN001"})
        backend.save("loans", "LN002", {"id": "LN002"})

        assert backend.delete("loans", "LN001")
        assert not backend.delete("loans", "LN001")
        backend.clear_table("loans")
        assert backend.count("loans") == 0

    def test_loaded_record_is_a_copy(self, backend):
        """Test callers cannot mutate stored data"""
        backend.save("loans", "LN001", {"id": "LN001", "terms": {"tenure": 12}})
        record = backend.load("loans", "LN001")
        record["terms"]["tenure"] = 99
        assert backend.load("loans", "LN001")["terms"]["tenure"] == 12


class TestCompareAndSwap:
    """Test optimistic version checks"""

    def test_insert_then_update(self, backend):
        """Test versions start at 1 and increase"""
        assert backend.compare_and_swap("ledger_accounts", "CA001", None, {"balance": "0"}) == 1
        assert backend.compare_and_swap("ledger_accounts", "CA001", 1, {"balance": "10"}) == 2
        assert backend.load("ledger_accounts", "CA001") == {"balance": "10", "version": 2}

    def test_insert_existing_conflicts(self, backend):
        """Test inserting over an existing record conflicts"""
        backend.compare_and_swap("ledger_accounts", "CA001", None, {"balance": "0"})
        with pytest.raises(ConcurrentUpdateConflict) as exc_info:
            backend.compare_and_swap("ledger_accounts", "CA001", None, {"balance": "5"})
        assert exc_info.value.actual_version == 1

    def test_stale_version_conflicts(self, backend):
        """Test a stale version is refused and data is unchanged"""
        backend.compare_and_swap("ledger_accounts", "CA001", None, {"balance": "0"})
        backend.compare_and_swap("ledger_accounts", "CA001", 1, {"balance": "10"})

        with pytest.raises(ConcurrentUpdateConflict, match="expected version 1, found 2"):
            backend.compare_and_swap("ledger_accounts", "CA001", 1, {"balance": "20"})
        assert backend.load("ledger_accounts", "CA001")["balance"] == "10"


class TestTransactions:
    """Test atomic blocks"""

    def test_commit(self, backend):
        """Test changes inside atomic are kept"""
        with backend.atomic():
            backend.save("loans", "LN001", {"id": "LN001"})
            backend.save("installments", "LN001_1", {"loan_id": "LN001"})

        assert backend.exists("loans", "LN001")
        assert backend.exists("installments", "LN001_1")

    def test_rollback(self, backend):
        """Test an exception undoes every change in the block"""
        backend.save("loans", "LN001", {"id": "LN001", "status": "draft"})

        with pytest.raises(RuntimeError):
            with backend.atomic():
                backend.save("loans", "LN001", {"id": "LN001", "status": "active"})
                backend.save("installments", "LN001_1", {"loan_id": "LN001"})
                raise RuntimeError("boom")

        assert backend.load("loans", "LN001")["status"] == "draft"
        assert backend.load("installments", "LN001_1") is None

    def test_nested_blocks_join_outer(self, backend):
        """Test an inner block is undone when the outer one fails"""
        with pytest.raises(RuntimeError):
            with backend.atomic():
                with backend.atomic():
                    backend.save("loans", "LN001", {"id": "LN001"})
                raise RuntimeError("outer failure")

        assert not backend.exists("loans", "LN001")


class TestSQLitePersistence:
    """Test SQLite durability"""

    def test_reopen(self, tmp_path):
        """Test records survive a reconnect"""
        path = tmp_path / "persist.db"
        storage = SQLiteStorage(path)
        storage.save("loans", "LN001", {"id": "LN001"})
        storage.close()

        reopened = SQLiteStorage(path)
        assert reopened.load("loans", "LN001") == {"id": "LN001"}
        reopened.close()


class TestFactory:
    """Test backend selection"""

    def test_create_storage(self, tmp_path):
        """Test backends chosen by name"""
        assert isinstance(create_storage("memory"), InMemoryStorage)
        sqlite_storage = create_storage("sqlite", str(tmp_path / "f.db"))
        assert isinstance(sqlite_storage, SQLiteStorage)
        sqlite_storage.close()

    def test_unknown_backend(self):
        """Test unsupported names raise"""
        with pytest.raises(ValueError, match="Unsupported storage backend"):
            create_storage("postgres")
