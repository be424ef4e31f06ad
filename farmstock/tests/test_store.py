"""
Tests for the Django document store and its optimistic transactions.
"""

from decimal import Decimal

import pytest
from django.core.exceptions import ImproperlyConfigured

from farmstock.adapters import DjangoDocumentStore, get_document_store
from farmstock.documents import PRODUCTS, to_decimal
from farmstock.exceptions import ConcurrentModificationError, NotFoundError
from farmstock.models import Document
from farmstock.models.document import DocumentQuerySet
from farmstock.protocols.store import DocumentRef, DocumentStore, Snapshot


pytestmark = pytest.mark.django_db


class TestDocumentRef:
    """Tests for DocumentRef and Snapshot."""

    def test_new_generates_unique_ids(self):
        """New refs get distinct 20-character ids."""
        a = DocumentRef.new(PRODUCTS)
        b = DocumentRef.new(PRODUCTS)

        assert a.id != b.id
        assert len(a.id) == 20
        assert str(a) == f'products/{a.id}'

    def test_missing_snapshot(self):
        """Snapshot without data does not exist."""
        snapshot = Snapshot(DocumentRef(PRODUCTS, 'nope'), None)

        assert not snapshot.exists
        assert snapshot.get('stock', 0) == 0


class TestStoreBasics:
    """Tests for single-document reads and writes."""

    def test_implements_protocol(self, store):
        """DjangoDocumentStore satisfies the DocumentStore protocol."""
        assert isinstance(store, DocumentStore)

    def test_set_then_get(self, store):
        """Decimals come back as strings and coerce back exactly."""
        ref = DocumentRef(PRODUCTS, 'p1')
        store.set(ref, {'name': 'Urea', 'stock': Decimal('12.5')})

        snapshot = store.get(ref)
        assert snapshot.exists
        assert snapshot.get('name') == 'Urea'
        assert to_decimal(snapshot.get('stock')) == Decimal('12.5')

    def test_update_merges_fields(self, store):
        """Update keeps fields it does not mention."""
        ref = DocumentRef(PRODUCTS, 'p1')
        store.set(ref, {'name': 'Urea', 'stock': 10})
        store.update(ref, {'stock': 7})

        assert store.get(ref).data == {'name': 'Urea', 'stock': 7}

    def test_update_missing_raises(self, store):
        """Updating a missing document raises NotFoundError."""
        with pytest.raises(NotFoundError) as exc:
            store.update(DocumentRef(PRODUCTS, 'ghost'), {'stock': 1})

        assert exc.value.code == 'NOT_FOUND'
        assert not Document.objects.exists()

    def test_writes_bump_version(self, store):
        """Every committed write increments the version."""
        ref = DocumentRef(PRODUCTS, 'p1')
        store.set(ref, {'stock': 1})
        store.update(ref, {'stock': 2})

        assert Document.objects.at(ref).get().version == 2

    def test_stream_collection(self, store):
        """Stream yields only the requested collection, ordered by key."""
        store.set(DocumentRef(PRODUCTS, 'b'), {'name': 'B'})
        store.set(DocumentRef(PRODUCTS, 'a'), {'name': 'A'})
        store.set(DocumentRef('harvests', 'h'), {'crop': 'corn'})

        assert [s.id for s in store.stream(PRODUCTS)] == ['a', 'b']


class TestTransactions:
    """Tests for store.transaction()."""

    def test_reads_see_own_writes(self, store, herbicide):
        """Inside a transaction, get() returns buffered writes."""
        ref = DocumentRef(PRODUCTS, herbicide)

        def apply(tx):
            tx.update(ref, {'stock': Decimal('1')})
            return tx.get(ref).get('stock')

        assert store.transaction(apply) == Decimal('1')

    def test_callback_error_writes_nothing(self, store, herbicide, stock_of):
        """A business error from the callback propagates with zero writes."""
        ref = DocumentRef(PRODUCTS, herbicide)
        calls = []

        def apply(tx):
            calls.append(1)
            tx.update(ref, {'stock': Decimal('0')})
            raise ValueError('boom')

        with pytest.raises(ValueError):
            store.transaction(apply)

        assert len(calls) == 1
        assert stock_of(herbicide) == Decimal('100')

    def test_conflict_reruns_callback(self, store, herbicide, stock_of):
        """A concurrent write between read and commit re-runs the callback."""
        ref = DocumentRef(PRODUCTS, herbicide)
        calls = []

        def apply(tx):
            calls.append(1)
            stock = to_decimal(tx.get(ref).get('stock'))
            if len(calls) == 1:
                store.update(ref, {'stock': Decimal('90')})  # concurrent writer
            tx.update(ref, {'stock': stock - 10})

        store.transaction(apply)

        assert len(calls) == 2
        assert stock_of(herbicide) == Decimal('80')

    def test_conflict_on_read_only_document(self, store, herbicide, seed, stock_of):
        """A document only read is also validated at commit."""
        herbicide_ref = DocumentRef(PRODUCTS, herbicide)
        seed_ref = DocumentRef(PRODUCTS, seed)
        calls = []

        def apply(tx):
            calls.append(1)
            available = to_decimal(tx.get(herbicide_ref).get('stock'))
            if len(calls) == 1:
                store.update(herbicide_ref, {'stock': Decimal('5')})
            tx.update(seed_ref, {'stock': available})

        store.transaction(apply)

        assert len(calls) == 2
        assert stock_of(seed) == Decimal('5')

    def test_exhausted_attempts(self, store, herbicide, stock_of):
        """Conflicts on every attempt raise ConcurrentModificationError."""
        ref = DocumentRef(PRODUCTS, herbicide)
        calls = []

        def apply(tx):
            calls.append(1)
            tx.get(ref)
            store.update(ref, {'note': len(calls)})
            tx.update(ref, {'stock': Decimal('0')})

        with pytest.raises(ConcurrentModificationError) as exc:
            store.transaction(apply)

        assert exc.value.data['attempts'] == 3
        assert len(calls) == 3
        assert stock_of(herbicide) == Decimal('100')

    def test_max_attempts_argument(self, herbicide):
        """max_attempts overrides the configured value."""
        store = DjangoDocumentStore(max_attempts=1)
        ref = DocumentRef(PRODUCTS, herbicide)

        def apply(tx):
            tx.get(ref)
            store.update(ref, {'note': 'x'})
            tx.update(ref, {'stock': Decimal('0')})

        with pytest.raises(ConcurrentModificationError):
            store.transaction(apply)

    def test_concurrent_create(self, store):
        """Creating a document someone else created meanwhile is a conflict."""
        ref = DocumentRef(PRODUCTS, 'fresh')
        calls = []

        def apply(tx):
            calls.append(1)
            if not tx.get(ref).exists:
                if len(calls) == 1:
                    store.set(ref, {'stock': 3})
                tx.set(ref, {'stock': 1})
                return 'created'
            tx.update(ref, {'stock': to_decimal(tx.get(ref).get('stock')) + 1})
            return 'incremented'

        assert store.transaction(apply) == 'incremented'
        assert to_decimal(store.get(ref).get('stock')) == Decimal('4')

    def test_read_only_rows_locked_at_commit(self, store, herbicide, seed, monkeypatch):
        """Documents only read are fetched with select_for_update() at commit."""
        locked = []
        original = DocumentQuerySet.select_for_update

        def spy(queryset, *args, **kwargs):
            locked.append(queryset.values_list('key', flat=True).first())
            return original(queryset, *args, **kwargs)

        monkeypatch.setattr(DocumentQuerySet, 'select_for_update', spy)
        herbicide_ref = DocumentRef(PRODUCTS, herbicide)
        seed_ref = DocumentRef(PRODUCTS, seed)

        def apply(tx):
            available = to_decimal(tx.get(herbicide_ref).get('stock'))
            tx.update(seed_ref, {'stock': available})

        store.transaction(apply)

        assert locked == [herbicide]


class TestDelete:
    """Tests for deleting documents."""

    def test_delete_removes_document(self, store):
        ref = DocumentRef(PRODUCTS, 'p1')
        store.set(ref, {'name': 'Urea'})

        store.delete(ref)

        assert not store.get(ref).exists
        assert not Document.objects.at(ref).exists()

    def test_delete_missing_is_noop(self, store):
        """Deleting a document that was never written does nothing."""
        ref = DocumentRef(PRODUCTS, 'ghost')

        store.delete(ref)

        assert not store.get(ref).exists

    def test_get_after_delete_in_transaction(self, store, herbicide):
        """Inside a transaction a deleted document reads as missing."""
        ref = DocumentRef(PRODUCTS, herbicide)

        def apply(tx):
            tx.get(ref)
            tx.delete(ref)
            return tx.get(ref).exists

        assert store.transaction(apply) is False
        assert not store.get(ref).exists

    def test_delete_conflict_reruns_callback(self, store, herbicide):
        """A write between read and delete re-runs the callback."""
        ref = DocumentRef(PRODUCTS, herbicide)
        calls = []

        def apply(tx):
            calls.append(1)
            tx.get(ref)
            if len(calls) == 1:
                store.update(ref, {'stock': Decimal('90')})
            tx.delete(ref)

        store.transaction(apply)

        assert len(calls) == 2
        assert not store.get(ref).exists

    def test_delete_after_concurrent_create_conflicts(self, store):
        """A document read as missing and created meanwhile is not deleted blindly."""
        ref = DocumentRef(PRODUCTS, 'fresh')
        calls = []

        def apply(tx):
            calls.append(1)
            if tx.get(ref).exists:
                return 'kept'
            if len(calls) == 1:
                store.set(ref, {'stock': 3})
            tx.delete(ref)
            return 'deleted'

        assert store.transaction(apply) == 'kept'
        assert len(calls) == 2
        assert store.get(ref).exists


class TestBackendLoader:
    """Tests for get_document_store()."""

    def test_default_backend(self):
        """The Django store is loaded by default and cached."""
        first = get_document_store()

        assert isinstance(first, DjangoDocumentStore)
        assert get_document_store() is first

    def test_empty_backend(self, settings):
        """An empty STORE_BACKEND is a configuration error."""
        settings.FARMSTOCK = {'STORE_BACKEND': ''}

        with pytest.raises(ImproperlyConfigured):
            get_document_store()

    def test_bad_backend(self, settings):
        """An unimportable STORE_BACKEND is a configuration error."""
        settings.FARMSTOCK = {'STORE_BACKEND': 'farmstock.nowhere.Store'}

        with pytest.raises(ImproperlyConfigured):
            get_document_store()
