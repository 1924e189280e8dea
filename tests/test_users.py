from __future__ import annotations

from pathlib import Path
from unittest import mock

import pytest

from usersvc.metrics import USERS_CREATED, USERS_DELETED, USERS_UPDATED, LifecycleMetrics
from usersvc.models import NewUser, UserChanges
from usersvc.passwords import verify_password
from usersvc.store import DuplicateKeyError, UserStore
from usersvc.users import (
    EMAIL_IN_USE,
    USERNAME_TAKEN,
    ConflictError,
    NotFoundError,
    UserManager,
)


@pytest.fixture()
def store(tmp_path: Path) -> UserStore:
    user_store = UserStore(tmp_path / "users.sqlite3")
    user_store.initialize()
    return user_store


@pytest.fixture()
def manager(store: UserStore) -> UserManager:
    return UserManager(store, metrics=LifecycleMetrics())


def _new_user(username: str = "alice", email: str = "a@x.com", **fields: object) -> NewUser:
    fields.setdefault("password", "p1")
    return NewUser(username=username, email=email, **fields)


def test_create_hashes_password_and_assigns_identifier(manager: UserManager, store: UserStore) -> None:
    user = manager.create(_new_user(first_name="Alice"))

    assert user.id
    assert user.username == "alice"
    assert user.password_hash != "p1"
    assert verify_password("p1", user.password_hash)
    assert user.created_at is not None
    assert store.find_by_id(user.id) is not None
    assert manager.metrics.value(USERS_CREATED) == 1


def test_create_normalizes_email(manager: UserManager) -> None:
    user = manager.create(_new_user(email="  Alice@Example.COM "))

    assert user.email == "alice@example.com"
    assert manager.find_by_email("ALICE@example.com") is not None


def test_create_rejects_duplicate_username(manager: UserManager, store: UserStore) -> None:
    manager.create(_new_user())

    with pytest.raises(ConflictError) as excinfo:
        manager.create(_new_user(email="other@x.com"))

    assert str(excinfo.value) == USERNAME_TAKEN
    assert [user.username for user in store.find_all()] == ["alice"]
    assert manager.metrics.value(USERS_CREATED) == 1


def test_create_rejects_duplicate_email(manager: UserManager, store: UserStore) -> None:
    manager.create(_new_user())

    with pytest.raises(ConflictError) as excinfo:
        manager.create(_new_user(username="alice2"))

    assert str(excinfo.value) == EMAIL_IN_USE
    assert len(store.find_all()) == 1


def test_create_does_not_save_when_username_taken() -> None:
    store = mock.create_autospec(UserStore, instance=True)
    store.exists_by_field.side_effect = lambda field, value: field == "username"
    manager = UserManager(store)

    with pytest.raises(ConflictError):
        manager.create(_new_user())

    store.exists_by_field.assert_called_once_with("username", "alice")
    store.save.assert_not_called()


def test_create_reports_conflict_when_store_index_rejects_save() -> None:
    store = mock.create_autospec(UserStore, instance=True)
    store.exists_by_field.return_value = False
    store.save.side_effect = DuplicateKeyError("email")
    metrics = LifecycleMetrics()
    manager = UserManager(store, metrics=metrics)

    with pytest.raises(ConflictError) as excinfo:
        manager.create(_new_user())

    assert str(excinfo.value) == EMAIL_IN_USE
    assert metrics.value(USERS_CREATED) == 0


def test_update_copies_mutable_fields_only(manager: UserManager) -> None:
    created = manager.create(_new_user(first_name="Alice", last_name="Liddell"))

    updated = manager.update(
        created.id,
        UserChanges(first_name="Alicia", email="alicia@x.com", active=False),
    )

    assert updated.id == created.id
    assert updated.username == "alice"
    assert updated.first_name == "Alicia"
    assert updated.last_name == "Liddell"
    assert updated.email == "alicia@x.com"
    assert updated.active is False
    assert updated.password_hash == created.password_hash
    assert updated.created_at == created.created_at
    assert updated.updated_at is not None and updated.updated_at >= created.updated_at
    assert manager.metrics.value(USERS_UPDATED) == 1


def test_update_clears_listed_names_and_keeps_others(manager: UserManager) -> None:
    created = manager.create(_new_user(first_name="Alice", last_name="Liddell"))

    updated = manager.update(created.id, UserChanges(cleared=frozenset({"last_name"})))

    assert updated.first_name == "Alice"
    assert updated.last_name is None
    assert manager.get(created.id).last_name is None


def test_update_missing_user_raises_not_found(manager: UserManager) -> None:

    with pytest.raises(NotFoundError) as excinfo:
        manager.update("missing", UserChanges(first_name="Ghost"))

    assert str(excinfo.value) == "User not found with id: missing"
    assert manager.metrics.value(USERS_UPDATED) == 0


def test_update_to_taken_email_raises_conflict(manager: UserManager) -> None:
    manager.create(_new_user())
    bob = manager.create(_new_user(username="bob", email="b@x.com"))

    with pytest.raises(ConflictError):
        manager.update(bob.id, UserChanges(email="a@x.com"))


def test_delete_removes_user(manager: UserManager) -> None:
    created = manager.create(_new_user())

    manager.delete(created.id)

    assert manager.get(created.id) is None
    assert manager.metrics.value(USERS_DELETED) == 1


def test_delete_missing_user_raises_not_found() -> None:
    store = mock.create_autospec(UserStore, instance=True)
    store.exists_by_id.return_value = False
    manager = UserManager(store)

    with pytest.raises(NotFoundError):
        manager.delete("123")

    store.exists_by_id.assert_called_once_with("123")
    store.delete_by_id.assert_not_called()


def test_search_matches_first_name_case_insensitively(manager: UserManager) -> None:
    manager.create(_new_user("u1", "u1@x.com", first_name="Maria"))
    manager.create(_new_user("u2", "u2@x.com", first_name="MARIANNE"))
    manager.create(_new_user("u3", "u3@x.com", first_name="Joan"))

    result = manager.search("maria", 0, 10)

    assert sorted(user.first_name for user in result.items) == ["MARIANNE", "Maria"]
    assert result.total == 2


def test_active_listing_and_count(manager: UserManager) -> None:
    manager.create(_new_user("u1", "u1@x.com"))
    manager.create(_new_user("u2", "u2@x.com", active=False))

    assert manager.count_active() == 1
    assert [user.username for user in manager.list_active()] == ["u1"]
    assert len(manager.list_all()) == 2


def test_list_page_defaults_to_newest_first(manager: UserManager) -> None:
    manager.create(_new_user("first", "first@x.com"))
    manager.create(_new_user("second", "second@x.com"))

    page = manager.list_page(0, 10)

    assert [user.username for user in page.items] == ["second", "first"]


def test_failed_delete_and_update_leave_counters_untouched(manager: UserManager) -> None:
    with pytest.raises(NotFoundError):
        manager.delete("missing")
    with pytest.raises(NotFoundError):
        manager.update("missing", UserChanges(last_name="Ghost"))

    assert manager.metrics.value(USERS_DELETED) == 0
    assert manager.metrics.value(USERS_UPDATED) == 0
