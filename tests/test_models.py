import pytest
from sqlalchemy.exc import IntegrityError

from kitstore.extensions import db
from kitstore.models import BillingEventLog, Kit, KitAsset, User


def test_stripe_price_id_is_immutable(app, make_kit):
    kit_id = make_kit()
    with app.app_context():
        kit = db.session.get(Kit, kit_id)
        with pytest.raises(ValueError):
            kit.stripe_price_id = "price_other"
        # re-assigning the same value is fine
        kit.stripe_price_id = "price_saas_launch_kit"


def test_kit_requires_price_reference():
    with pytest.raises(ValueError):
        Kit(name="No price", price=1, stripe_price_id="  ")


def test_asset_type_is_validated():
    with pytest.raises(ValueError):
        KitAsset(asset_key="x", name="X", type="video")


def test_assets_are_ordered_by_position(app, make_kit):
    kit_id = make_kit(assets=[
        {"id": "third", "name": "Third", "type": "text"},
        {"id": "first", "name": "First", "type": "graphic"},
    ])
    with app.app_context():
        kit = db.session.get(Kit, kit_id)
        kit.assets[0].position = 5
        db.session.commit()
        db.session.expire_all()
        kit = db.session.get(Kit, kit_id)
        assert [a.asset_key for a in kit.assets] == ["first", "third"]


def test_asset_keys_unique_within_kit(app, make_kit):
    kit_id = make_kit(assets=[{"id": "only", "name": "Only", "type": "text"}])
    with app.app_context():
        db.session.add(KitAsset(kit_id=kit_id, asset_key="only", name="Again", type="text"))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()


def test_user_email_unique_ignoring_case(app):
    with app.app_context():
        a = User(email="Someone@Example.com")
        a.set_password("x" * 10)
        db.session.add(a)
        db.session.commit()

        b = User(email="someone@example.com")
        b.set_password("y" * 10)
        db.session.add(b)
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()


def test_user_ids_are_opaque_strings(app, make_user):
    uid = make_user()
    assert isinstance(uid, str)
    assert len(uid) == 36


def test_billing_event_log_defaults(app):
    with app.app_context():
        log = BillingEventLog(stripe_event_id="evt_defaults", type="checkout.session.completed")
        db.session.add(log)
        db.session.commit()
        assert log.retries == 0
        assert log.signature_valid is True
        assert log.payload == {}
        assert log.created_at is not None
