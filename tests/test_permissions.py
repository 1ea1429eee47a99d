import pytest

from core import permissions
from core.errors import DuplicateGrant, NoAccess
from db import store


def test_grant_then_has_access(run, db, patient, doctor):
    assert not run(permissions.has_access(db, patient.id, doctor.id))
    run(permissions.grant(db, patient.id, doctor.id))
    assert run(permissions.has_access(db, patient.id, doctor.id))
    # access is directional
    assert not run(permissions.has_access(db, doctor.id, patient.id))


def test_duplicate_grant_is_refused(run, db, patient, doctor):
    run(permissions.grant(db, patient.id, doctor.id))
    with pytest.raises(DuplicateGrant):
        run(permissions.grant(db, patient.id, doctor.id))


def test_grant_revoke_grant_leaves_one_row(run, db, patient, doctor):
    run(permissions.grant(db, patient.id, doctor.id))
    run(permissions.revoke(db, patient.id, doctor.id))
    run(permissions.grant(db, patient.id, doctor.id))
    run(db.commit())

    rows = run(store.list_permissions_for_subject(db, patient.id))
    assert len(rows) == 1
    assert rows[0].grantee_id == doctor.id


def test_revoke_absent_grant_is_a_noop(run, db, patient, doctor):
    assert run(permissions.revoke(db, patient.id, doctor.id)) is None


def test_require_access_raises_no_access(run, db, patient, doctor):
    with pytest.raises(NoAccess):
        run(permissions.require_access(db, patient.id, doctor.id))


def test_listings_resolve_identities_and_skip_missing(run, db, patient, doctor, other_doctor):
    run(permissions.grant(db, patient.id, doctor.id))
    run(permissions.grant(db, patient.id, other_doctor.id))
    run(permissions.grant(db, patient.id, "deleted-user-id"))
    run(db.commit())

    grantees = run(permissions.list_grantees_for(db, patient.id))
    assert {u.id for u in grantees} == {doctor.id, other_doctor.id}
    assert [u.id for u in run(permissions.list_subjects_for(db, doctor.id))] == [patient.id]
