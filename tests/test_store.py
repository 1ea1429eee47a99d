import pytest

from core.errors import StorageError
from db import store
from db.models import Block, HistoryEntry, Permission, Prescription, User, new_uuid


def _user(email, role="patient", **auth):
    auth = auth or {"auth_method": "password", "salt_hex": "00", "password_hash_hex": "ff"}
    return User(id=new_uuid(), name=email.split("@")[0], email=email, role=role, profile={}, created_at=1, **auth)


def test_put_user_is_upsert_by_id(run, db):
    user = run(store.put_user(db, _user("dana@x.com")))
    user.name = "Dana"
    run(store.put_user(db, user))
    run(db.commit())

    assert run(store.get_user(db, user.id)).name == "Dana"
    assert [u.id for u in run(store.list_users_by_role(db, "patient"))] == [user.id]


def test_email_is_unique(run, db):
    run(store.put_user(db, _user("dup@x.com")))
    with pytest.raises(StorageError):
        run(store.put_user(db, _user("dup@x.com")))
    run(db.rollback())


def test_user_needs_exactly_one_auth_descriptor(run, db):
    both = _user(
        "both@x.com",
        auth_method="password", salt_hex="00", password_hash_hex="ff", wallet_address="0x1",
    )
    with pytest.raises(StorageError):
        run(store.put_user(db, both))
    run(db.rollback())


def test_permission_pair_is_unique(run, db):
    run(store.put_permission(db, Permission(id=new_uuid(), subject_id="p", grantee_id="d", granted_at=1)))
    with pytest.raises(StorageError):
        run(store.put_permission(db, Permission(id=new_uuid(), subject_id="p", grantee_id="d", granted_at=2)))
    run(db.rollback())


def test_block_index_is_unique_per_subject(run, db):
    def block(subject, index):
        return Block(
            id=new_uuid(), subject_id=subject, index=index, prev_hash="x", hash="y",
            timestamp=1, payload_type="report", author_id="a", author_name="A",
        )

    run(store.put_block(db, block("p1", 0)))
    run(store.put_block(db, block("p2", 0)))
    with pytest.raises(StorageError):
        run(store.put_block(db, block("p1", 0)))
    run(db.rollback())


def test_secondary_lookups_are_ordered_for_callers(run, db):
    for created_at in (30, 10, 20):
        run(store.put_history_entry(db, HistoryEntry(
            id=new_uuid(), subject_id="p", author_id="p", author_name="P",
            kind="report", title=str(created_at), created_at=created_at,
        )))
        run(store.put_prescription(db, Prescription(
            id=new_uuid(), subject_id="p", grantee_id="d", grantee_name="D",
            medication=str(created_at), dosage="1", frequency="1", duration="1", created_at=created_at,
        )))
    run(db.commit())

    assert [e.created_at for e in run(store.list_history_by_subject(db, "p"))] == [10, 20, 30]
    assert [p.created_at for p in run(store.list_prescriptions_by_subject(db, "p"))] == [30, 20, 10]
    assert run(store.list_history_by_subject(db, "someone-else")) == []


def test_delete_by_id(run, db):
    permission = run(store.put_permission(db, Permission(id=new_uuid(), subject_id="p", grantee_id="d", granted_at=1)))
    run(store.delete_permission(db, permission.id))
    run(db.commit())
    assert run(store.get_permission(db, "p", "d")) is None
    assert run(store.list_permissions_for_grantee(db, "d")) == []
