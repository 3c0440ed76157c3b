"""Tests for resolving the single direct channel shared by two users."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from app.core.errors import ForbiddenError, InvalidRequestError, NotFoundError
from app.models import Base, Channel, ChannelMember, User
from app.services.channels import (
    find_channel,
    get_counterpart,
    get_or_create_channel,
    list_user_channel_ids,
    require_membership,
)


@pytest.fixture()
def pair(make_user):
    return make_user("Alice"), make_user("Bob")


def _channel_count(session) -> int:
    return session.execute(select(func.count(Channel.id))).scalar_one()


def test_resolution_is_symmetric(db_session, pair):
    alice, bob = pair

    forward = get_or_create_channel(db_session, alice.id, bob.id)
    backward = get_or_create_channel(db_session, bob.id, alice.id)

    assert forward == backward
    assert find_channel(db_session, alice.id, bob.id) == forward
    assert find_channel(db_session, bob.id, alice.id) == forward


def test_resolution_is_idempotent(db_session, pair):
    alice, bob = pair

    first = get_or_create_channel(db_session, alice.id, bob.id)
    second = get_or_create_channel(db_session, alice.id, bob.id)

    assert first == second
    assert _channel_count(db_session) == 1
    members = db_session.execute(
        select(ChannelMember.user_id).where(ChannelMember.channel_id == first)
    ).scalars()
    assert sorted(members) == sorted([alice.id, bob.id])


def test_find_channel_returns_none_before_creation(db_session, pair):
    alice, bob = pair
    assert find_channel(db_session, alice.id, bob.id) is None


def test_self_conversation_is_rejected(db_session, pair):
    alice, _ = pair
    with pytest.raises(InvalidRequestError):
        get_or_create_channel(db_session, alice.id, alice.id)


def test_group_channels_are_not_direct_channels(db_session, pair, make_user):
    alice, bob = pair
    carol = make_user("Carol")
    group = Channel()
    group.members = [
        ChannelMember(user_id=alice.id),
        ChannelMember(user_id=bob.id),
        ChannelMember(user_id=carol.id),
    ]
    db_session.add(group)
    db_session.commit()

    assert find_channel(db_session, alice.id, bob.id) is None
    direct = get_or_create_channel(db_session, alice.id, bob.id)
    assert direct != group.id


def test_membership_helpers(db_session, pair, make_user):
    alice, bob = pair
    outsider = make_user("Mallory")
    channel_id = get_or_create_channel(db_session, alice.id, bob.id)

    assert require_membership(db_session, channel_id, bob.id) == sorted([alice.id, bob.id])
    with pytest.raises(ForbiddenError):
        require_membership(db_session, channel_id, outsider.id)
    with pytest.raises(NotFoundError):
        require_membership(db_session, "missing", alice.id)

    assert get_counterpart(db_session, channel_id, alice.id).id == bob.id
    assert list_user_channel_ids(db_session, bob.id) == [channel_id]


def test_concurrent_creation_yields_single_channel(tmp_path):
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, future=True)
    with factory() as session:
        alice = User(name="Alice", email="alice@example.com", hashed_password="x")
        bob = User(name="Bob", email="bob@example.com", hashed_password="x")
        session.add_all([alice, bob])
        session.commit()
        alice_id, bob_id = alice.id, bob.id

    def open_channel(index: int) -> str:
        requester, counterpart = (alice_id, bob_id) if index % 2 else (bob_id, alice_id)
        with factory() as session:
            return get_or_create_channel(session, requester, counterpart)

    try:
        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(open_channel, range(8)))

        assert len(set(results)) == 1
        with factory() as session:
            assert _channel_count(session) == 1
    finally:
        engine.dispose()
