from unittest.mock import Mock

from tagmentia.features.subscriptions.service import get_subscription
from tagmentia.features.usage.service import count_categories, count_screenshots
from tagmentia.features.users.service import delete_user, get_or_create_user, get_user


def test_first_sight_creates_user_on_free_plan():
    user = get_or_create_user("3f2a9c1e-77aa-4b2e", display_name="  Ada  ")

    assert user.display_name == "Ada"
    assert get_user("3f2a9c1e-77aa-4b2e").display_name == "Ada"
    assert get_subscription("3f2a9c1e-77aa-4b2e").plan_id == "free"


def test_get_or_create_is_idempotent():
    first = get_or_create_user("alice")
    second = get_or_create_user("alice", display_name="Other")

    assert second.display_name == first.display_name == "user-alice"


def test_delete_user_removes_owned_rows(make_user, owned_rows):
    user_id = make_user("alice")
    cat = owned_rows.category(user_id)
    video = owned_rows.video(user_id, cat)
    owned_rows.screenshot(user_id, video, cat, size_bytes=10)
    cache = Mock()

    assert delete_user(user_id, cache=cache) is True

    assert get_user(user_id) is None
    assert get_subscription(user_id) is None
    assert count_categories(user_id) == 0
    assert count_screenshots(user_id) == 0
    cache.invalidate.assert_called_with(user_id)


def test_delete_unknown_user():
    assert delete_user("ghost") is False
