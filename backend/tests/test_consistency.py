"""
Consistency strategy tests.

Topology detection order, transactional vs direct write paths, and the
fallback when the backend refuses a transaction at runtime.
"""

import logging
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from shopkeeper.models import Product, Purchase, Sale
from shopkeeper.services import products_service
from shopkeeper.services.concurrency import run_with_retry
from shopkeeper.services.consistency import (
    ConsistencyStrategy,
    DirectUnitOfWork,
    TOPOLOGY_REPLICA_SET,
    TOPOLOGY_SERVER,
    TOPOLOGY_SINGLE,
    TransactionalUnitOfWork,
    TransactionUnsupportedError,
    detect_topology,
)
from shopkeeper.services.transaction_service import PersistenceError, PurchaseRequest, SaleRequest


def _engine(dialect_name):
    return SimpleNamespace(dialect=SimpleNamespace(name=dialect_name))


def _sale(items, bill_id="B-1"):
    return SaleRequest.from_payload({"billId": bill_id, "items": items})


def _purchase(items, bill_id="P-1"):
    return PurchaseRequest.from_payload({"billId": bill_id, "items": items})


def _quantity(db_session, code):
    db_session.expire_all()
    return db_session.query(Product).filter_by(product_code=code).one().quantity


# =============================================================================
# TOPOLOGY DETECTION
# =============================================================================


class TestDetectTopology:
    def test_embedded_database_without_hints_is_single(self):
        report = detect_topology(_engine("sqlite"))
        assert report.topology == TOPOLOGY_SINGLE
        assert report.source == "default"
        assert not report.supports_transactions

    def test_server_dialect_is_reported_live(self):
        report = detect_topology(_engine("postgresql"))
        assert report.topology == TOPOLOGY_SERVER
        assert report.source == "live"
        assert report.supports_transactions

    def test_replica_set_name_is_next(self):
        report = detect_topology(_engine("sqlite"), replica_set_name="rs0")
        assert report.topology == TOPOLOGY_REPLICA_SET
        assert report.source == "replica_set_config"

    def test_connection_string_marker_is_last(self):
        report = detect_topology(None, database_url="sqlite:///shop.db?replicaSet=rs0")
        assert report.topology == TOPOLOGY_REPLICA_SET
        assert report.source == "connection_string"

    def test_live_topology_wins_over_configuration(self):
        report = detect_topology(_engine("mysql"), replica_set_name="rs0")
        assert report.source == "live"


class TestUseTransactions:
    def test_disabled_flag_always_means_direct(self, app):
        strategy = ConsistencyStrategy(enabled=False, replica_set_name="rs0")
        assert strategy.use_transactions() is False

    def test_enabled_but_single_topology_means_direct(self, app):
        strategy = ConsistencyStrategy(enabled=True, engine_getter=lambda: _engine("sqlite"))
        assert strategy.use_transactions() is False

    def test_enabled_and_supported_means_transactional(self, app):
        strategy = ConsistencyStrategy(enabled=True, engine_getter=lambda: _engine("postgresql"))
        assert strategy.use_transactions() is True

    def test_from_app_reads_config(self, app):
        strategy = ConsistencyStrategy.from_app(app)
        assert strategy.enabled is False
        assert strategy.database_url == "sqlite:///:memory:"

    def test_purchase_with_transactions_on_single_topology_succeeds_directly(
        self, db_session, processor, make_product, monkeypatch
    ):
        make_product("SKU-1", quantity=5)
        processor.strategy.enabled = True
        processor.strategy.replica_set_name = None
        opened = []
        monkeypatch.setattr(TransactionalUnitOfWork, "begin", lambda self: opened.append(self))

        result = processor.process_purchase(_purchase([{"productId": "SKU-1", "quantity": 4}]))

        assert opened == []
        assert set(result.to_dict("purchase")) == {"purchase", "updatedProducts", "dashboard"}
        assert result.replayed is False
        assert _quantity(db_session, "SKU-1") == 9
        assert db_session.query(Purchase).count() == 1


# =============================================================================
# WRITE PATHS
# =============================================================================


class TestWritePaths:
    def test_transactional_sale_applies_all_items(self, db_session, transactional, make_product):
        make_product("SKU-1", quantity=5)
        make_product("SKU-2", quantity=5)

        transactional.process_sale(_sale([
            {"productId": "SKU-1", "quantity": 2},
            {"productId": "SKU-2", "quantity": 1},
        ]))

        assert _quantity(db_session, "SKU-1") == 3
        assert _quantity(db_session, "SKU-2") == 4

    def test_transactional_failure_mid_batch_rolls_everything_back(
        self, db_session, transactional, make_product, monkeypatch
    ):
        make_product("SKU-1", quantity=5)
        make_product("SKU-2", quantity=5)
        real_save = products_service.save
        calls = []

        def failing_save(uow, product):
            calls.append(product.product_code)
            if len(calls) == 2:
                raise SQLAlchemyError("disk I/O error")
            return real_save(uow, product)

        monkeypatch.setattr(products_service, "save", failing_save)

        with pytest.raises(PersistenceError) as exc_info:
            transactional.process_sale(_sale([
                {"productId": "SKU-1", "quantity": 2},
                {"productId": "SKU-2", "quantity": 1},
            ]))

        assert exc_info.value.status_code == 500
        assert _quantity(db_session, "SKU-1") == 5
        assert _quantity(db_session, "SKU-2") == 5
        assert db_session.query(Sale).count() == 0

    def test_direct_failure_mid_batch_keeps_earlier_items(
        self, db_session, processor, make_product, monkeypatch
    ):
        make_product("SKU-1", quantity=5)
        make_product("SKU-2", quantity=5)
        real_save = products_service.save
        calls = []

        def failing_save(uow, product):
            calls.append(product.product_code)
            if len(calls) == 2:
                raise SQLAlchemyError("disk I/O error")
            return real_save(uow, product)

        monkeypatch.setattr(products_service, "save", failing_save)

        with pytest.raises(PersistenceError):
            processor.process_sale(_sale([
                {"productId": "SKU-1", "quantity": 2},
                {"productId": "SKU-2", "quantity": 1},
            ]))

        # Without a transaction the first item was already committed
        assert _quantity(db_session, "SKU-1") == 3
        assert _quantity(db_session, "SKU-2") == 5
        assert db_session.query(Sale).count() == 0

    def test_direct_unit_of_work_commits_each_checkpoint(self, db_session, make_product):
        product = make_product("SKU-1", quantity=5)
        uow = DirectUnitOfWork()

        product.quantity = 4
        uow.add(product)
        uow.checkpoint()
        uow.rollback()

        assert _quantity(db_session, "SKU-1") == 4


# =============================================================================
# RUNTIME FALLBACK
# =============================================================================


class TestFallback:
    def test_refused_transaction_reruns_without_one(
        self, app, db_session, transactional, make_product, monkeypatch, caplog
    ):
        make_product("SKU-1", quantity=5)

        def refuse(self):
            raise TransactionUnsupportedError("Transaction numbers are only allowed on a replica set member")

        monkeypatch.setattr(TransactionalUnitOfWork, "begin", refuse)

        with caplog.at_level(logging.WARNING, logger=app.logger.name):
            result = transactional.process_sale(_sale([{"productId": "SKU-1", "quantity": 2}]))

        assert _quantity(db_session, "SKU-1") == 3
        assert db_session.query(Sale).count() == 1
        assert result.replayed is False
        assert "retrying sale without transaction support" in caplog.text

    def test_batch_committed_before_refusal_is_not_applied_twice(
        self, db_session, transactional, make_product, monkeypatch
    ):
        make_product("SKU-1", quantity=5)
        real_commit = TransactionalUnitOfWork.commit

        def commit_then_refuse(self):
            real_commit(self)
            raise TransactionUnsupportedError("refused after commit")

        monkeypatch.setattr(TransactionalUnitOfWork, "commit", commit_then_refuse)

        result = transactional.process_sale(_sale([{"productId": "SKU-1", "quantity": 2}], bill_id="B-42"))

        assert result.replayed is True
        assert result.record.bill_id == "B-42"
        assert [p.product_code for p in result.updated_products] == ["SKU-1"]
        assert _quantity(db_session, "SKU-1") == 3
        assert db_session.query(Sale).filter_by(bill_id="B-42").count() == 1

    def test_earlier_bill_with_same_id_does_not_count_as_replay(
        self, db_session, transactional, make_product, monkeypatch
    ):
        make_product("SKU-1", quantity=5)
        transactional.process_sale(_sale([{"productId": "SKU-1", "quantity": 1}], bill_id="B-7"))

        def refuse(self):
            raise TransactionUnsupportedError("refused")

        monkeypatch.setattr(TransactionalUnitOfWork, "begin", refuse)

        result = transactional.process_sale(_sale([{"productId": "SKU-1", "quantity": 1}], bill_id="B-7"))

        assert result.replayed is False
        assert _quantity(db_session, "SKU-1") == 3
        assert db_session.query(Sale).filter_by(bill_id="B-7").count() == 2

    def test_refused_transaction_reruns_purchase_without_one(
        self, app, db_session, transactional, make_product, monkeypatch, caplog
    ):
        make_product("SKU-1", quantity=5)

        def refuse(self):
            raise TransactionUnsupportedError("Transaction numbers are only allowed on a replica set member")

        monkeypatch.setattr(TransactionalUnitOfWork, "begin", refuse)

        with caplog.at_level(logging.WARNING, logger=app.logger.name):
            result = transactional.process_purchase(_purchase([{"productId": "SKU-1", "quantity": 4}]))

        assert set(result.to_dict("purchase")) == {"purchase", "updatedProducts", "dashboard"}
        assert result.replayed is False
        assert _quantity(db_session, "SKU-1") == 9
        assert db_session.query(Purchase).count() == 1
        assert "retrying purchase without transaction support" in caplog.text


# =============================================================================
# CONFLICT RETRY
# =============================================================================


class TestRunWithRetry:
    def test_version_conflict_is_retried(self, app, db_session):
        calls = []

        def batch():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "stored"

        assert run_with_retry(batch, backoff_base=0, label="sale") == "stored"
        assert len(calls) == 3

    def test_last_conflict_is_raised(self, app, db_session):
        def batch():
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(batch, attempts=2, backoff_base=0)

    def test_other_errors_are_not_retried(self, app, db_session):
        calls = []

        def batch():
            calls.append(1)
            raise SQLAlchemyError("constraint failed")

        with pytest.raises(SQLAlchemyError):
            run_with_retry(batch, backoff_base=0)
        assert len(calls) == 1
